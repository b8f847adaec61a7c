"""Disk storage layer – save attached images and their thumbnails."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from urllib.parse import urlparse

import httpx
from PIL import Image

from .api import SiteClient
from .config import ArchiveConfig

logger = logging.getLogger("petrarchive.storage")

# Decoded format → thumbnail encoder; everything else becomes JPEG
THUMB_ENCODERS: dict[str, str] = {
    "JPEG": "JPEG",
    "PNG": "PNG",
}

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tif", ".tiff"}

# Errors Pillow raises for images it cannot read or write
IMAGE_ERRORS = (OSError, ValueError, Image.DecompressionBombError)


class DiskStorageService:
    """Keep raw images and thumbnails under the archive directory."""

    def __init__(self, cfg: ArchiveConfig | None = None, api: SiteClient | None = None) -> None:
        self.cfg = cfg or ArchiveConfig.from_env()
        self.api = api
        self.root = Path(self.cfg.archive_dir)

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Error creating archive directory %s: %s", self.root, exc)

    # ── paths ────────────────────────────────────────────────────

    def path_for(self, post_id: str, url: str) -> Path:
        """Raw asset path: the post id plus the URL's image extension, if any."""
        ext = PurePosixPath(urlparse(url).path).suffix.lower()
        if ext not in IMAGE_EXTENSIONS:
            ext = ""
        return self.root / f"{post_id}{ext}"

    def thumb_path(self, path: Path) -> Path:
        return path.with_name(f"{path.stem}{self.cfg.thumb_suffix}{path.suffix}")

    def is_thumbnail(self, path: Path) -> bool:
        return self.cfg.thumb_suffix in path.name

    # ── thumbnail generation ────────────────────────────────────

    def make_thumbnail(self, path: Path) -> Path:
        """Write a thumbnail next to ``path`` and return its location.

        The longest edge is capped at ``thumbnail_max_size``.  Raises on
        decode or encode failure.
        """
        with Image.open(path) as img:
            fmt = img.format or ""
            img.load()
            thumb = img.copy()
        thumb.thumbnail((self.cfg.thumbnail_max_size, self.cfg.thumbnail_max_size), Image.Resampling.LANCZOS)

        encoder = THUMB_ENCODERS.get(fmt, "JPEG")
        out = self.thumb_path(path)
        if encoder == "JPEG":
            if thumb.mode != "RGB":
                thumb = thumb.convert("RGB")
            thumb.save(out, format="JPEG", quality=self.cfg.jpeg_quality)
        else:
            thumb.save(out, format=encoder)
        return out

    # ── download ─────────────────────────────────────────────────

    def store(self, url: str, post_id: str) -> str | None:
        """Download ``url`` for ``post_id``.  Returns the local path or None.

        Any failure to download, decode or thumbnail the image means no
        local asset; a raw file that cannot be decoded is removed.
        """
        if self.api is None:
            return None
        try:
            data = self.api.download(url)
        except httpx.HTTPError as exc:
            logger.warning("Error downloading image %s for post %s: %s", url, post_id, exc)
            return None
        if not data:
            logger.warning("No image data at %s for post %s", url, post_id)
            return None

        path = self.path_for(post_id, url)
        try:
            path.write_bytes(data)
        except OSError as exc:
            logger.warning("Error writing image for post %s: %s", post_id, exc)
            return None

        try:
            self.make_thumbnail(path)
        except IMAGE_ERRORS as exc:
            logger.warning("Failed to create thumbnail for %s: %s", path, exc)
            path.unlink(missing_ok=True)
            return None
        logger.debug("Downloaded image to: %s", path)
        return str(path)

    # ── maintenance ──────────────────────────────────────────────

    def regenerate_thumbnails(self, *, force: bool = False) -> tuple[int, int]:
        """Build missing thumbnails (all of them with ``force``).  Returns (processed, errors)."""
        logger.info("Regenerating thumbnails (force=%s)...", force)
        processed = errors = 0
        for path in sorted(self.root.glob("*")):
            if not path.is_file() or self.is_thumbnail(path):
                continue
            if not force and self.thumb_path(path).exists():
                continue
            try:
                self.make_thumbnail(path)
                processed += 1
            except IMAGE_ERRORS as exc:
                logger.error("Error creating thumbnail for %s: %s", path, exc)
                errors += 1
        logger.info("Thumbnail regeneration complete: %d processed, %d errors", processed, errors)
        return processed, errors

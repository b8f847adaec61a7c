"""Configuration and environment settings for the archiver."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = "localhost"
    port: int = 5432
    dbname: str = "petrarchive"
    user: str = "petrarchive"
    password: str = "petrarchive"

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.dbname}"

    @classmethod
    def from_env(cls) -> DatabaseConfig:
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            dbname=os.getenv("DB_NAME", "petrarchive"),
            user=os.getenv("DB_USER", "petrarchive"),
            password=os.getenv("DB_PASSWORD", "petrarchive"),
        )


@dataclass(frozen=True)
class SiteConfig:
    """Remote board settings.  Delays are upper bounds of a random pre-request pause."""
    base_url: str = "https://petrarchan.com"
    catalog_path: str = "/pt/catalog"
    thread_path: str = "/pt/thread/{thread_id}"
    user_agent: str = (
        "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/133.0.0.0 Safari/537.36"
    )
    catalog_delay: float = 1.0
    thread_delay: float = 2.0
    max_retries: int = 3
    timeout: float = 30.0

    @property
    def catalog_url(self) -> str:
        return self.base_url + self.catalog_path

    def thread_url(self, thread_id: str) -> str:
        return self.base_url + self.thread_path.format(thread_id=thread_id)

    @classmethod
    def from_env(cls) -> SiteConfig:
        return cls(
            base_url=os.getenv("SITE_BASE_URL", "https://petrarchan.com"),
            catalog_delay=float(os.getenv("SITE_CATALOG_DELAY", "1.0")),
            thread_delay=float(os.getenv("SITE_THREAD_DELAY", "2.0")),
        )


@dataclass(frozen=True)
class ArchiveConfig:
    archive_dir: Path = Path("static/petrarchive")
    thumbnail_max_size: int = 150
    thumb_suffix: str = "_thumb"
    jpeg_quality: int = 85

    @classmethod
    def from_env(cls) -> ArchiveConfig:
        return cls(archive_dir=Path(os.getenv("ARCHIVE_DIR", "static/petrarchive")))


@dataclass(frozen=True)
class CrawlConfig:
    site: SiteConfig = field(default_factory=SiteConfig.from_env)
    db: DatabaseConfig = field(default_factory=DatabaseConfig.from_env)
    archive: ArchiveConfig = field(default_factory=ArchiveConfig.from_env)
    max_threads: int = 61  # the catalog holds ~60 threads
    download_images: bool = True
    timezone: str = "America/Detroit"

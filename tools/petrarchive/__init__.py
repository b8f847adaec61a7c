"""
Petrarchive – incremental archiver for a thread-based message board.

Supports:
  • Crawling the catalog and re-scraping only new or grown threads
  • Skipping posts already stored (dedup against stored post ids)
  • Downloading attached images and generating thumbnails
  • Reconciling stored reply counts with stored replies (audit pass)
  • Running the crawl on a recurring, timezone-aware schedule
"""

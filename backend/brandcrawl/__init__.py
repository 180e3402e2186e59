"""Brand website crawl queue."""

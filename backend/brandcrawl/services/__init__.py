"""Crawl queue services: enqueue, claim and process, reap."""

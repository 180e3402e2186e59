"""API router aggregation."""

from fastapi import APIRouter

from brandcrawl.api.crawl import router as crawl_router

router = APIRouter(prefix="/api")

router.include_router(crawl_router)

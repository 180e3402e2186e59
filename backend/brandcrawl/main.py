"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import redis
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.middleware.gzip import GZipMiddleware

from brandcrawl.api import router as api_router
from brandcrawl.config import Settings, get_settings
from brandcrawl.exceptions import InvalidCrawlRequest
from brandcrawl.models.base import Base, engine, get_db
from brandcrawl.services.job_store import CrawlJobStore

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] [%(process)d] [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("Starting %s...", settings.app_name)
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables verified")
    yield
    logger.info("Shutting down...")
    engine.dispose()


app = FastAPI(
    title=settings.app_name,
    description="Asynchronous brand website crawl queue",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(GZipMiddleware, minimum_size=500)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidCrawlRequest)
async def invalid_crawl_request_handler(request: Request, exc: InvalidCrawlRequest):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


app.include_router(api_router)


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name}


@app.get("/health/detailed")
def detailed_health_check(
    db: Session = Depends(get_db),
    app_settings: Settings = Depends(get_settings),
):
    checks = {}

    # Database and queue
    try:
        db.execute(text("SELECT 1")).scalar()
        checks["database"] = {"ok": True}
        store = CrawlJobStore(db, app_settings)
        stale = len(store.list_stale())
        checks["queue"] = {"ok": stale == 0, "jobs": store.count_by_status(), "stale_processing": stale}
    except SQLAlchemyError as e:
        db.rollback()
        checks["database"] = {"ok": False, "message": str(e)}

    # Redis
    try:
        r = redis.from_url(app_settings.redis_url, socket_timeout=5)
        r.ping()
        checks["redis"] = {"ok": True}
    except Exception as e:
        checks["redis"] = {"ok": False, "message": str(e)}

    all_ok = all(check.get("ok", False) for check in checks.values())
    status = "healthy" if all_ok else "degraded"

    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": checks,
    }

"""Shared-secret guard for the scheduler trigger endpoint."""

import secrets

from fastapi import Depends, HTTPException, Query

from brandcrawl.config import Settings, get_settings
from brandcrawl.pipelines.base import BaseBrandPipeline
from brandcrawl.pipelines.registry import build_pipeline


def verify_cron_secret(
    secret: str = Query("", description="Shared cron secret"),
    settings: Settings = Depends(get_settings),
) -> None:
    """Raise 403 unless the configured secret is set and matches."""
    if not settings.cron_secret or not secret:
        raise HTTPException(status_code=403, detail="Invalid cron secret")
    if not secrets.compare_digest(settings.cron_secret, secret):
        raise HTTPException(status_code=403, detail="Invalid cron secret")


def get_pipeline(settings: Settings = Depends(get_settings)) -> BaseBrandPipeline:
    return build_pipeline(settings)

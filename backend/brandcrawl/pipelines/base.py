"""Base brand extraction pipeline."""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Protocol

from brandcrawl.config import Settings, get_settings
from brandcrawl.schemas.crawl_job import ProcessingJob

logger = logging.getLogger(__name__)


class ProgressCallback(Protocol):
    def __call__(self, progress: int, message: str | None = None) -> Awaitable[None]: ...


class BaseBrandPipeline(ABC):
    """Abstract base class for brand extraction pipelines.

    Subclasses implement extract(), which turns a claimed job into a brand kit
    dict. They should call `progress` between stages; each call is a heartbeat
    and may raise if the job has been taken away from this worker, in which
    case the pipeline must let the exception propagate.
    """

    name: str = "base"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @abstractmethod
    async def extract(self, job: ProcessingJob, progress: ProgressCallback) -> dict[str, Any]:
        """Run the extraction for job.url and return the brand kit."""
        ...

    async def run(self, job: ProcessingJob, progress: ProgressCallback) -> dict[str, Any]:
        logger.info(f"[{self.name}] Extracting brand kit for run_id={job.id} url={job.url}")
        brand_kit = await self.extract(job, progress)
        logger.info(f"[{self.name}] Extracted {len(brand_kit)} brand kit fields for run_id={job.id}")
        return brand_kit

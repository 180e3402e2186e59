"""Pipeline registry — maps pipeline names to pipeline classes."""

import logging
from typing import Type

from brandcrawl.config import Settings
from brandcrawl.pipelines.base import BaseBrandPipeline

logger = logging.getLogger(__name__)

# Pipeline name -> pipeline class mapping
_REGISTRY: dict[str, Type[BaseBrandPipeline]] = {}


def register_pipeline(name: str):
    """Decorator to register a pipeline class under a name."""
    def decorator(cls: Type[BaseBrandPipeline]):
        cls.name = name
        _REGISTRY[name] = cls
        logger.debug(f"Registered brand pipeline: {name}")
        return cls
    return decorator


def get_pipeline_class(name: str) -> Type[BaseBrandPipeline] | None:
    """Look up the pipeline class for a given name."""
    return _REGISTRY.get(name)


def list_pipelines() -> list[str]:
    """List all registered pipelines."""
    return list(_REGISTRY.keys())


def build_pipeline(settings: Settings) -> BaseBrandPipeline:
    """Instantiate the pipeline named by settings.brand_pipeline."""
    # Import pipelines package to trigger @register_pipeline decorators
    import brandcrawl.pipelines  # noqa: F401

    pipeline_class = get_pipeline_class(settings.brand_pipeline)
    if not pipeline_class:
        raise ValueError(f"No brand pipeline registered under: {settings.brand_pipeline}")
    return pipeline_class(settings=settings)

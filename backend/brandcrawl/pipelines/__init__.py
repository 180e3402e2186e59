"""Pipeline package — import all pipelines to trigger @register_pipeline decorators."""

from brandcrawl.pipelines.http_brand import HttpBrandPipeline  # noqa: F401

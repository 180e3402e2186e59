"""Default brand pipeline: one HTTP fetch of the homepage plus HTML heuristics.

Good enough to exercise the queue end to end; richer crawlers register their
own pipeline name.
"""

import logging
import re
from collections import Counter
from typing import Any
from urllib.parse import urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from brandcrawl.config import Settings
from brandcrawl.exceptions import PipelineExecutionError
from brandcrawl.pipelines.base import BaseBrandPipeline, ProgressCallback
from brandcrawl.pipelines.registry import register_pipeline
from brandcrawl.schemas.crawl_job import ProcessingJob

logger = logging.getLogger(__name__)

HEX_COLOR = re.compile(r"#(?:[0-9a-fA-F]{6}|[0-9a-fA-F]{3})\b")
MAX_IMAGES = 20
MAX_COLORS = 6

FALLBACK_COLORS = {
    "primary": "#000000",
    "secondary": "#FFFFFF",
    "accent": None,
    "allColors": [],
}


def brand_name_from_url(url: str) -> str:
    """'https://www.acme-coffee.com/about' -> 'Acme Coffee'."""
    host = (urlsplit(url).hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    label = host.split(".")[0] if host else ""
    return " ".join(part.capitalize() for part in re.split(r"[-_]", label) if part)


def _normalize_hex(value: str) -> str:
    value = value.lower()
    if len(value) == 4:
        value = "#" + "".join(ch * 2 for ch in value[1:])
    return value


def extract_colors(soup: BeautifulSoup) -> dict[str, Any]:
    """Rank hex colours by frequency across theme-color, <style> blocks and inline styles."""
    counts: Counter[str] = Counter()

    theme = soup.find("meta", attrs={"name": "theme-color"})
    if theme and theme.get("content") and HEX_COLOR.fullmatch(theme["content"].strip()):
        # The declared theme colour outranks anything found in CSS.
        counts[_normalize_hex(theme["content"].strip())] += 1000

    for style in soup.find_all("style"):
        counts.update(_normalize_hex(c) for c in HEX_COLOR.findall(style.get_text()))
    for el in soup.find_all(style=True):
        counts.update(_normalize_hex(c) for c in HEX_COLOR.findall(el["style"]))

    ranked = [color for color, _ in counts.most_common(MAX_COLORS)]
    if not ranked:
        return dict(FALLBACK_COLORS)
    return {
        "primary": ranked[0],
        "secondary": ranked[1] if len(ranked) > 1 else FALLBACK_COLORS["secondary"],
        "accent": ranked[2] if len(ranked) > 2 else None,
        "allColors": ranked,
    }


def parse_brand_page(html: str, url: str) -> dict[str, Any]:
    """Pull brand identity signals out of a homepage."""
    soup = BeautifulSoup(html, "lxml")

    def meta(*keys: str) -> str | None:
        for key in keys:
            tag = soup.find("meta", attrs={"property": key}) or soup.find("meta", attrs={"name": key})
            if tag and tag.get("content"):
                return tag["content"].strip()
        return None

    title = soup.title.get_text(strip=True) if soup.title else None

    logos: list[str] = []
    for link in soup.find_all("link", href=True):
        rel = " ".join(link.get("rel") or []).lower()
        if "icon" in rel:
            logos.append(urljoin(url, link["href"]))
    for img in soup.find_all("img", src=True):
        marker = " ".join([img["src"], img.get("alt") or "", " ".join(img.get("class") or [])]).lower()
        if "logo" in marker:
            logos.append(urljoin(url, img["src"]))

    images: list[str] = []
    og_image = meta("og:image")
    if og_image:
        images.append(urljoin(url, og_image))
    for img in soup.find_all("img", src=True):
        src = urljoin(url, img["src"])
        if src not in images and not src.startswith("data:"):
            images.append(src)
        if len(images) >= MAX_IMAGES:
            break

    try:
        colors = extract_colors(soup)
    except Exception as e:
        # Colour extraction never fails the crawl.
        logger.warning(f"Color extraction failed for {url}: {e}")
        colors = dict(FALLBACK_COLORS)

    return {
        "brandName": meta("og:site_name", "application-name") or brand_name_from_url(url),
        "title": title,
        "description": meta("description", "og:description"),
        "logoCandidates": list(dict.fromkeys(logos)),
        "images": images,
        "colors": colors,
        "sourceUrl": url,
    }


@register_pipeline("http")
class HttpBrandPipeline(BaseBrandPipeline):

    def __init__(self, settings: Settings | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(settings)
        self.transport = transport

    async def fetch(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(
                transport=self.transport,
                timeout=self.settings.fetch_timeout_seconds,
                follow_redirects=True,
                headers={"User-Agent": self.settings.user_agent},
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            raise PipelineExecutionError(f"Failed to fetch {url}: {e}") from e

        content_type = resp.headers.get("content-type", "")
        if "html" not in content_type:
            raise PipelineExecutionError(f"Expected an HTML page at {url}, got '{content_type or 'unknown'}'")
        return resp.text

    async def extract(self, job: ProcessingJob, progress: ProgressCallback) -> dict[str, Any]:
        await progress(20, "Crawling website...")
        html = await self.fetch(job.url)

        await progress(50, "Extracting brand assets...")
        brand_kit = parse_brand_page(html, job.url)

        await progress(70, "Generating brand kit...")
        brand_kit["pagesCrawled"] = 1

        await progress(95, "Finalizing...")
        return brand_kit

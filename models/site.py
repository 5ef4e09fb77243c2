"""Pydantic models for crawled site data."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class FetchedPage(BaseModel):
    """A single HTTP GET result."""

    url: str = Field(..., description="Final URL after redirects")
    status_code: int
    content_type: str = ""
    text: str = ""

    @property
    def is_html(self) -> bool:
        return "html" in self.content_type.lower()


class CrawlResult(BaseModel):
    """Pages collected by one crawl: URL → body HTML plus discovery order."""

    model_config = ConfigDict(frozen=True)

    visited: Dict[str, str] = Field(default_factory=dict)
    order: List[str] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.order)


class SitemapURL(BaseModel):
    """A ``<url>`` entry of a sitemap."""

    loc: str
    lastmod: Optional[str] = None
    changefreq: Optional[str] = None
    priority: Optional[float] = None

"""General-purpose async web content client used by the crawler and the tools."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from config.settings import settings
from models.site import FetchedPage


class WebContentClient:
    """Async HTTP client for fetching pages from the site under test.

    One GET per call, redirects followed, per-request timeout. Use it as an
    async context manager; ``transport`` lets tests plug in an
    ``httpx.MockTransport``.
    """

    DEFAULT_HEADERS = {
        "User-Agent": "site-test-bot/1.0",
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    }

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: Optional[int] = None,
        log=None,
    ) -> None:
        self._timeout = timeout if timeout is not None else settings.crawl_request_timeout_seconds
        self._transport = transport
        self._max_retries = max(1, max_retries if max_retries is not None else settings.fetch_max_retries)
        self._client: Optional[httpx.AsyncClient] = None
        self._log = log or logger.bind(component="fetcher")

    async def __aenter__(self) -> "WebContentClient":
        self._client = httpx.AsyncClient(
            headers=self.DEFAULT_HEADERS,
            timeout=self._timeout,
            follow_redirects=True,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_page(self, url: str) -> Optional[FetchedPage]:
        """GET *url* and return the final response, or ``None`` when it failed."""
        assert self._client is not None, "Use as async context manager."
        for attempt in range(1, self._max_retries + 1):
            try:
                response = await self._client.get(url)
                response.raise_for_status()
                return FetchedPage(
                    url=str(response.url),
                    status_code=response.status_code,
                    content_type=response.headers.get("content-type", ""),
                    text=response.text,
                )
            except httpx.HTTPStatusError as exc:
                self._log.debug(f"[attempt {attempt}] HTTP {exc.response.status_code} for {url}")
                if exc.response.status_code in {401, 403, 404, 410}:
                    break
            except httpx.RequestError as exc:
                self._log.debug(f"[attempt {attempt}] Request error for {url}: {exc}")
            if attempt < self._max_retries:
                await asyncio.sleep(attempt * settings.crawl_delay_seconds)
        return None

    async def fetch(self, url: str) -> str:
        """Fetch the raw body of *url*; empty string on failure."""
        page = await self.fetch_page(url)
        return page.text if page else ""

    async def fetch_many(self, urls: List[str], concurrency: Optional[int] = None) -> Dict[str, str]:
        """Fetch several URLs concurrently, returning a map of url → body.

        Failed pages map to an empty string so callers see every requested URL.
        """
        semaphore = asyncio.Semaphore(max(1, concurrency or settings.content_concurrency))

        async def _one(url: str) -> str:
            async with semaphore:
                return await self.fetch(url)

        bodies = await asyncio.gather(*(_one(url) for url in urls))
        return dict(zip(urls, bodies))

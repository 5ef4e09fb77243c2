"""Site crawler.

Breadth-first crawl of a single site over :class:`WebContentClient`. A pool
of worker tasks drains an ``asyncio.Queue``; the page map, the discovery order
and the seen set are shared under one lock. Setting the stop event makes the
crawl return what it has collected so far.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Set, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from loguru import logger

from clients.web_client import WebContentClient
from config.settings import settings
from models.site import CrawlResult, FetchedPage
from utils.helpers import canonical_url, normalize_url, path_segments, resolve_link, same_host


class SiteCrawler:
    """Bounded, concurrent, same-site crawler."""

    def __init__(
        self,
        client: Optional[WebContentClient] = None,
        parallelism: Optional[int] = None,
        delay_seconds: Optional[float] = None,
        restrict_to_seed_path: Optional[bool] = None,
        log=None,
    ) -> None:
        self._client = client
        self._parallelism = max(1, parallelism or settings.crawl_parallelism)
        self._delay = settings.crawl_delay_seconds if delay_seconds is None else delay_seconds
        self._restrict = (
            settings.crawl_restrict_to_seed_path
            if restrict_to_seed_path is None
            else restrict_to_seed_path
        )
        self._log = log or logger.bind(component="crawler")

    async def crawl(
        self,
        seed_url: str,
        max_depth: Optional[int] = None,
        max_path_segments: Optional[int] = None,
        stop_event: Optional[asyncio.Event] = None,
    ) -> CrawlResult:
        """
        Crawl from *seed_url* and return the HTML pages found.

        Args:
            seed_url: Start URL; a missing scheme is inferred.
            max_depth: Link hops from the seed (the seed is depth 0).
            max_path_segments: Max path segments beyond the seed's; 0 = unlimited.
            stop_event: When set, the crawl stops and returns early.

        Raises:
            InvalidURLError: The seed is empty or not an http(s) URL.
        """
        seed = canonical_url(normalize_url(seed_url))
        depth_limit = settings.crawl_max_depth if max_depth is None else max_depth
        segment_limit = settings.crawl_max_path_segments if max_path_segments is None else max_path_segments
        stop = stop_event or asyncio.Event()

        self._log.info(f"Crawling {seed} (depth≤{depth_limit}, segments≤{segment_limit or '∞'})")
        if self._client is not None:
            result = await self._crawl(self._client, seed, depth_limit, segment_limit, stop)
        else:
            async with WebContentClient() as client:
                result = await self._crawl(client, seed, depth_limit, segment_limit, stop)

        if stop.is_set():
            self._log.warning(f"Crawl of {seed} stopped early with {len(result)} pages.")
        else:
            self._log.success(f"Crawl of {seed} done. Pages: {len(result)}")
        return result

    # ── Internals ─────────────────────────────────────────────────────────────

    async def _crawl(
        self,
        client: WebContentClient,
        seed: str,
        max_depth: int,
        max_path_segments: int,
        stop: asyncio.Event,
    ) -> CrawlResult:
        seed_segments = path_segments(seed)
        seed_path = urlparse(seed).path

        queue: "asyncio.Queue[Tuple[str, int]]" = asyncio.Queue()
        lock = asyncio.Lock()
        seen: Set[str] = {seed}
        visited: Dict[str, str] = {}
        order: List[str] = []

        def in_scope(url: str) -> bool:
            if not same_host(url, seed):
                return False
            if self._restrict and not _under_path(urlparse(url).path, seed_path):
                return False
            if max_path_segments and path_segments(url) - seed_segments > max_path_segments:
                return False
            return True

        async def worker() -> None:
            while True:
                url, depth = await queue.get()
                try:
                    if stop.is_set():
                        continue
                    if self._delay:
                        await asyncio.sleep(self._delay)
                    if stop.is_set():
                        continue
                    page = await client.fetch_page(url)
                    if page is None or not page.is_html or stop.is_set():
                        continue
                    final_url = canonical_url(page.url)
                    if final_url != url and not in_scope(final_url):
                        continue
                    body, links = _parse_page(page)
                    async with lock:
                        if stop.is_set():
                            continue
                        seen.add(final_url)
                        if final_url not in visited:
                            visited[final_url] = body
                            order.append(final_url)
                        if depth + 1 > max_depth:
                            continue
                        for link in links:
                            if link in seen or not in_scope(link):
                                continue
                            seen.add(link)
                            queue.put_nowait((link, depth + 1))
                except Exception as exc:
                    self._log.debug(f"Skipping {url}: {exc}")
                finally:
                    queue.task_done()

        queue.put_nowait((seed, 0))
        workers = [asyncio.create_task(worker()) for _ in range(self._parallelism)]
        drained = asyncio.create_task(queue.join())
        stopped = asyncio.create_task(stop.wait())
        try:
            await asyncio.wait({drained, stopped}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            pending = workers + [drained, stopped]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        async with lock:
            return CrawlResult(visited=dict(visited), order=list(order))


def _parse_page(page: FetchedPage) -> Tuple[str, List[str]]:
    """Return the inner HTML of ``<body>`` and the resolved links of *page*."""
    soup = BeautifulSoup(page.text, "html.parser")
    body = soup.body
    html = body.decode_contents() if body is not None else str(soup)
    links: List[str] = []
    for anchor in soup.find_all("a", href=True):
        link = resolve_link(page.url, anchor["href"])
        if link:
            links.append(link)
    return html, links


def _under_path(path: str, base: str) -> bool:
    base = base.rstrip("/")
    if not base:
        return True
    return path == base or path.startswith(base + "/")

"""Analyzer tool handlers.

Each handler receives a validated tool input and returns one of the tagged
tool results from ``models.tools``. ``build_analyzer_tools`` wires them into
the ``ToolSpec`` list the orchestration loop dispatches over.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple
from urllib.parse import urlparse

from bs4 import BeautifulSoup
from loguru import logger

from clients.sentry_client import SentryClient
from clients.web_client import WebContentClient
from models.site import SitemapURL
from models.tools import (
    ContentResult,
    FinalCriteriaToolInput,
    FinalizeResult,
    GetContentToolInput,
    IssuesResult,
    IssuesToolInput,
    SitemapResult,
    SitemapToolInput,
    ToolSpec,
)
from utils.errors import InvalidURLError, SitemapNotFoundError, ToolInputError
from utils.helpers import normalize_url

SITEMAP_TOOL = "sitemap_tool"
CONTENT_TOOL = "get_content_tool"
SENTRY_TOOL = "sentry_tool"
FINALIZE_TOOL = "final_criteria_tool"

SITEMAP_CANDIDATES = (
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap-index.xml",
    "/sitemap.php",
    "/sitemap",
)

_STRIPPED_TAGS = ["script", "style", "svg"]
_STRIPPED_ATTRS = ("class", "style")


# ── Sitemap ───────────────────────────────────────────────────────────────────


def parse_sitemap(xml: str) -> Tuple[List[SitemapURL], List[str]]:
    """Return ``(<url> entries, child sitemap locations)`` of a sitemap document."""
    soup = BeautifulSoup(xml, "xml")
    entries: List[SitemapURL] = []
    for node in soup.find_all("url"):
        loc = node.find("loc")
        if loc is None or not loc.get_text(strip=True):
            continue
        priority = node.find("priority")
        try:
            priority_value = float(priority.get_text(strip=True)) if priority is not None else None
        except ValueError:
            priority_value = None
        entries.append(
            SitemapURL(
                loc=loc.get_text(strip=True),
                lastmod=_text_of(node, "lastmod"),
                changefreq=_text_of(node, "changefreq"),
                priority=priority_value,
            )
        )
    children = [
        loc.get_text(strip=True)
        for node in soup.find_all("sitemap")
        for loc in node.find_all("loc", limit=1)
        if loc.get_text(strip=True)
    ]
    return entries, children


def _text_of(node, name: str) -> Optional[str]:
    child = node.find(name)
    return child.get_text(strip=True) if child is not None else None


def sitemap_from_robots(robots_txt: str) -> Optional[str]:
    """First ``Sitemap:`` directive of a robots.txt body."""
    for line in robots_txt.splitlines():
        line = line.strip()
        if line.lower().startswith("sitemap:"):
            location = line.split(":", 1)[1].strip()
            if location:
                return location
    return None


async def get_sitemap(base_url: str, client: WebContentClient, log=None) -> List[SitemapURL]:
    """
    Locate and parse the sitemap of the site at *base_url*.

    robots.txt is consulted first, then the usual sitemap locations. A
    sitemap index is followed one level, to its first child sitemap.

    Raises:
        SitemapNotFoundError: No candidate yielded any URL entries.
    """
    log = log or logger.bind(component="tools")
    try:
        parsed = urlparse(normalize_url(base_url))
    except InvalidURLError as exc:
        raise ToolInputError(str(exc), tool_name=SITEMAP_TOOL) from exc
    origin = f"{parsed.scheme}://{parsed.netloc}"

    candidates = [origin + path for path in SITEMAP_CANDIDATES]
    robots_sitemap = sitemap_from_robots(await client.fetch(origin + "/robots.txt"))
    if robots_sitemap:
        candidates.insert(0, robots_sitemap)

    for candidate in candidates:
        log.debug(f"Trying sitemap URL: {candidate}")
        body = await client.fetch(candidate)
        if not body:
            continue
        entries, children = parse_sitemap(body)
        if entries:
            log.debug(f"Found sitemap at {candidate} with {len(entries)} URLs")
            return entries
        if children:
            log.debug(f"Found sitemap index at {candidate} with {len(children)} sitemaps")
            child_entries, _ = parse_sitemap(await client.fetch(children[0]))
            if child_entries:
                return child_entries

    raise SitemapNotFoundError(f"no sitemap found for {base_url}", {"base_url": base_url})


# ── Page content ──────────────────────────────────────────────────────────────


def clean_html(html: str) -> str:
    """Drop scripts, styles, SVGs and class/style attributes; return body HTML."""
    if not html:
        return ""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_STRIPPED_TAGS):
        tag.decompose()
    for tag in soup.find_all(True):
        for attr in _STRIPPED_ATTRS:
            tag.attrs.pop(attr, None)
    body = soup.body
    return body.decode_contents() if body is not None else str(soup)


async def get_content(
    urls: List[str],
    client: WebContentClient,
    concurrency: Optional[int] = None,
    log=None,
) -> Dict[str, str]:
    """Fetch and clean the body content of *urls*; failed pages map to ``""``."""
    log = log or logger.bind(component="tools")
    if not urls:
        raise ToolInputError("empty URLs list provided", tool_name=CONTENT_TOOL)

    valid: List[str] = []
    for raw in urls:
        try:
            url = normalize_url(raw)
        except InvalidURLError:
            log.debug(f"Skipping invalid URL {raw!r}")
            continue
        if url not in valid:
            valid.append(url)
    if not valid:
        raise ToolInputError("no valid URLs provided", tool_name=CONTENT_TOOL)

    pages = await client.fetch_many(valid, concurrency=concurrency)
    contents = {url: clean_html(html) for url, html in pages.items()}
    log.info(f"Fetched content for {sum(1 for c in contents.values() if c)}/{len(contents)} URLs")
    return contents


class ContentAccumulator:
    """Every page the content tool returned during one analyzer run."""

    def __init__(self) -> None:
        self._pages: Dict[str, str] = {}

    def add(self, contents: Dict[str, str]) -> None:
        for url, html in contents.items():
            if html or url not in self._pages:
                self._pages[url] = html

    def snapshot(self) -> Dict[str, str]:
        return dict(self._pages)

    def __len__(self) -> int:
        return len(self._pages)


# ── Registry ──────────────────────────────────────────────────────────────────


def build_analyzer_tools(
    client: WebContentClient,
    accumulator: ContentAccumulator,
    sentry: Optional[SentryClient] = None,
    content_concurrency: Optional[int] = None,
    log=None,
) -> List[ToolSpec]:
    """Tool set of the site analyzer; the Sentry tool needs a configured client."""
    log = log or logger.bind(component="tools")

    async def sitemap_handler(params: SitemapToolInput) -> SitemapResult:
        return SitemapResult(urls=await get_sitemap(params.base_url, client, log=log))

    async def content_handler(params: GetContentToolInput) -> ContentResult:
        contents = await get_content(params.urls, client, concurrency=content_concurrency, log=log)
        accumulator.add(contents)
        return ContentResult(contents=contents)

    async def finalize_handler(params: FinalCriteriaToolInput) -> FinalizeResult:
        return FinalizeResult(
            tech_spec=params.tech_spec,
            criteria=params.criteria,
            content_map=accumulator.snapshot(),
        )

    tools = [
        ToolSpec(
            name=SITEMAP_TOOL,
            description="This tool is able to get a website's sitemap using a base URL",
            input_model=SitemapToolInput,
            handler=sitemap_handler,
        ),
        ToolSpec(
            name=CONTENT_TOOL,
            description="This tool is able to get the body content for a list of important URLs",
            input_model=GetContentToolInput,
            handler=content_handler,
        ),
    ]

    if sentry is not None and sentry.configured:

        async def sentry_handler(params: IssuesToolInput) -> IssuesResult:
            return IssuesResult(issues=await sentry.get_issues(params.org_slug, params.project_slug))

        tools.append(
            ToolSpec(
                name=SENTRY_TOOL,
                description="This tool is able to get error information from Sentry for a specific project",
                input_model=IssuesToolInput,
                handler=sentry_handler,
            )
        )

    tools.append(
        ToolSpec(
            name=FINALIZE_TOOL,
            description=(
                "Call this tool once you understand the website. Provide the technical "
                "specification of the website and the criteria for its E2E tests."
            ),
            input_model=FinalCriteriaToolInput,
            handler=finalize_handler,
        )
    )
    return tools

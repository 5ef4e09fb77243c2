"""Site analyzer agent.

Lets the model explore the target site through the analyzer tools and
return a technical description of the site plus the criteria for its E2E
tests.
"""

from __future__ import annotations

from typing import List, Optional

from loguru import logger

from agents.site_crawler import SiteCrawler
from agents.tool_loop import ToolOrchestrationLoop
from agents.tools import FINALIZE_TOOL, ContentAccumulator, build_analyzer_tools
from clients.llm_client import ModelGateway
from clients.sentry_client import SentryClient
from clients.web_client import WebContentClient
from config.settings import settings
from models.testing import AnalyzerResult
from utils.helpers import normalize_url

# Cap on pre-crawled URLs listed in the seed message.
_MAX_SEED_URLS = 100

ANALYZER_SYSTEM_PROMPT = f"""\
You are a senior QA engineer preparing end-to-end tests for a website.

Explore the website with the tools you have: read its sitemap, fetch the
content of the pages that matter and, when a Sentry project is named, look
at its recent errors. Focus on the user-facing flows: navigation, forms,
search, authentication and anything the user asked about.

When you understand the site, call `{FINALIZE_TOOL}` exactly once with:
- techSpec: a concise technical specification of the website (structure,
  key pages, interactive elements, notable selectors or texts);
- criteria: the E2E test criteria, one per paragraph, separated by a blank
  line. Each criterion must be independently testable with Playwright.
"""


class SiteAnalyzerAgent:
    """
    Produces an ``AnalyzerResult`` for a website.

    Pipeline:
    1. Optional pre-crawl of the site to list its pages in the seed message.
    2. ToolOrchestrationLoop over sitemap / content / Sentry / finalize tools.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        client: Optional[WebContentClient] = None,
        sentry: Optional[SentryClient] = None,
        precrawl: Optional[bool] = None,
        max_turns: Optional[int] = None,
        log=None,
    ) -> None:
        self._gateway = gateway
        self._client = client
        self._sentry = sentry if sentry is not None else SentryClient()
        self._precrawl = settings.analyzer_precrawl if precrawl is None else precrawl
        self._max_turns = max_turns
        self._log = log or logger.bind(component="analyzer")

    async def run(self, url: str, prompt: str = "") -> AnalyzerResult:
        url = normalize_url(url)
        self._log.info(f"SiteAnalyzerAgent: analyzing {url}")
        if self._client is not None:
            return await self._analyze(self._client, url, prompt)
        async with WebContentClient() as client:
            return await self._analyze(client, url, prompt)

    async def _analyze(self, client: WebContentClient, url: str, prompt: str) -> AnalyzerResult:
        known_urls: List[str] = []
        if self._precrawl:
            crawl = await SiteCrawler(client=client, log=self._log).crawl(url)
            known_urls = crawl.order

        accumulator = ContentAccumulator()
        tools = build_analyzer_tools(client, accumulator, sentry=self._sentry, log=self._log)
        loop = ToolOrchestrationLoop(
            self._gateway,
            tools,
            finalize_tool=FINALIZE_TOOL,
            system=ANALYZER_SYSTEM_PROMPT,
            max_turns=self._max_turns,
            max_tokens=settings.analyzer_max_tokens,
            log=self._log,
        )
        final = await loop.run(build_seed_message(url, prompt, known_urls))

        result = AnalyzerResult(
            tech_spec=final.tech_spec,
            content_map=final.content_map,
            criteria=final.criteria,
        )
        self._log.success(
            f"SiteAnalyzerAgent: {len(result.criteria_list())} criteria, "
            f"{len(result.content_map)} pages of content."
        )
        return result


def build_seed_message(url: str, prompt: str, known_urls: Optional[List[str]] = None) -> str:
    message = f"The website is: {url} - {prompt}" if prompt else f"The website is: {url}"
    if known_urls:
        listed = known_urls[:_MAX_SEED_URLS]
        message += "\n\nPages found by crawling the website:\n" + "\n".join(f"- {u}" for u in listed)
        if len(known_urls) > len(listed):
            message += f"\n… and {len(known_urls) - len(listed)} more."
    return message

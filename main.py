"""
Site E2E Test Bot – main entry point.

Usage
-----
# Full run: analyze the site and generate Playwright tests per criterion
python main.py --url https://example.com --prompt "Focus on the checkout flow"

# Crawl only: list the pages the crawler finds
python main.py --url https://example.com --crawl-only
"""

import argparse
import asyncio
import pathlib
import sys

from dotenv import load_dotenv
from loguru import logger

load_dotenv(override=True)

from config.settings import settings  # noqa: E402 – must be after load_dotenv


def _configure_logging() -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        level=settings.log_level,
        colorize=False,
        format="{time:HH:mm:ss} | {level: <8} | {message}",
    )
    if settings.log_file:
        pathlib.Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB", retention="7 days")


async def _run_crawl(url: str, max_depth: int) -> None:
    from agents.site_crawler import SiteCrawler

    result = await SiteCrawler().crawl(url, max_depth=max_depth)
    for page_url in result.order:
        print(page_url)


async def _run_pipeline(url: str, prompt: str, max_iterations: int, criteria_limit) -> None:
    from agents.orchestrator import OrchestratorAgent

    agent = OrchestratorAgent()
    report = await agent.run(
        url,
        prompt,
        max_iterations=max_iterations,
        criteria_limit=criteria_limit,
    )
    for outcome in report.outcomes:
        location = outcome.artifact_path or outcome.error
        print(f"[{outcome.status:>9}] criterion {outcome.index + 1}: {location}")


def main() -> None:
    _configure_logging()

    parser = argparse.ArgumentParser(description="Site E2E Test Bot")
    parser.add_argument("--url", required=True, help="Website to generate tests for.")
    parser.add_argument("--prompt", default="", help="Extra instructions for the analyzer.")
    parser.add_argument(
        "--max-iterations",
        type=int,
        default=settings.gen_eval_max_iterations,
        help="Generate/evaluate retries per criterion.",
    )
    parser.add_argument("--criteria-limit", type=int, default=None, help="Only cover the first N criteria.")
    parser.add_argument("--crawl-only", action="store_true", help="Crawl the site and print its pages.")
    parser.add_argument("--max-depth", type=int, default=settings.crawl_max_depth)
    args = parser.parse_args()

    if args.crawl_only:
        asyncio.run(_run_crawl(args.url, args.max_depth))
    else:
        asyncio.run(_run_pipeline(args.url, args.prompt, args.max_iterations, args.criteria_limit))


if __name__ == "__main__":
    main()

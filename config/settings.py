"""Application configuration using pydantic-settings."""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All configuration loaded from environment / .env file."""

    # ── Language model ────────────────────────────────────────────────────────
    # Plain OpenAI is used unless an Azure OpenAI endpoint is configured.
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_base_url: Optional[str] = Field(
        default=None,
        description="Override for OpenAI-compatible endpoints",
    )
    azure_openai_endpoint: str = Field(default="")
    azure_openai_api_key: str = Field(default="")
    azure_openai_api_version: str = Field(default="2024-10-21")

    # Analyzer turns are cheap and frequent, generation needs the bigger model.
    analyzer_model: str = Field(default="gpt-4o-mini")
    generator_model: str = Field(default="gpt-4o")
    analyzer_max_tokens: int = Field(default=1024)
    generator_max_tokens: int = Field(default=4096)
    llm_timeout_seconds: float = Field(default=120.0)

    # ── Crawling ──────────────────────────────────────────────────────────────
    # The seed is depth 0, so 5 hops covers six levels of pages.
    crawl_max_depth: int = Field(default=5, description="Link hops from the seed")
    crawl_max_path_segments: int = Field(default=2, description="0 = unlimited")
    crawl_parallelism: int = Field(default=24)
    crawl_delay_seconds: float = Field(default=0.01)
    crawl_request_timeout_seconds: float = Field(default=10.0)
    crawl_restrict_to_seed_path: bool = Field(default=False)
    fetch_max_retries: int = Field(default=1)
    content_concurrency: int = Field(default=8)
    # Pre-crawl the site and hand the discovered URLs to the analyzer prompt.
    analyzer_precrawl: bool = Field(default=True)

    # ── Orchestration ─────────────────────────────────────────────────────────
    tool_loop_max_turns: int = Field(default=25, description="0 = unlimited")
    gen_eval_max_iterations: int = Field(default=3)
    # Downgrade an evaluator acceptance when the test run itself failed.
    require_passing_run: bool = Field(default=True)

    # ── Sentry (optional context) ─────────────────────────────────────────────
    sentry_auth_token: str = Field(default="")
    sentry_base_url: str = Field(default="https://sentry.io/api/0")

    # ── Test runner ───────────────────────────────────────────────────────────
    test_command: List[str] = Field(default=["pnpm", "test"])
    test_timeout_seconds: float = Field(default=300.0)
    test_file_suffix: str = Field(default=".spec.ts")

    # ── Storage ───────────────────────────────────────────────────────────────
    artifacts_dir: Optional[str] = Field(
        default=None,
        description=(
            "Prepared Playwright project (package.json, playwright.config.ts) that receives "
            "generated tests; an empty temp dir when unset"
        ),
    )
    reports_dir: str = Field(default="reports")

    # ── Logging ───────────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_file: Optional[str] = Field(default="logs/site-test-bot.log")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


settings = Settings()

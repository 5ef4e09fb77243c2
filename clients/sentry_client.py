"""Sentry REST client – recent unresolved issues as extra test context."""

from __future__ import annotations

from typing import Any, List, Optional

import httpx
from loguru import logger
from pydantic import TypeAdapter, ValidationError

from config.settings import settings
from models.tools import SentryIssue
from utils.errors import ConfigurationError, ToolExecutionError

_ISSUES = TypeAdapter(List[SentryIssue])


class SentryClient:
    """
    Async client for the Sentry web API.

    Only issue listing is needed: the analyzer uses unresolved issues from the
    last two weeks to point tests at pages that break in production.
    """

    def __init__(
        self,
        auth_token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: int = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        log=None,
    ) -> None:
        self._token = auth_token if auth_token is not None else settings.sentry_auth_token
        self._base_url = (base_url or settings.sentry_base_url).rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._log = log or logger.bind(component="sentry")

    @property
    def configured(self) -> bool:
        return bool(self._token)

    async def __aenter__(self) -> "SentryClient":
        if not self._token:
            raise ConfigurationError("Sentry auth token not configured")
        self._client = httpx.AsyncClient(
            headers={
                "Authorization": f"Bearer {self._token}",
                "Content-Type": "application/json",
            },
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_issues(self, org_slug: str, project_slug: str) -> List[SentryIssue]:
        """Unresolved issues of ``org_slug/project_slug`` seen in the last 14 days."""
        if self._client is None:
            async with self:
                return await self.get_issues(org_slug, project_slug)

        url = f"{self._base_url}/projects/{org_slug}/{project_slug}/issues/"
        self._log.debug(f"Getting Sentry issues for {org_slug}/{project_slug}")
        try:
            response = await self._client.get(
                url, params={"statsPeriod": "14d", "query": "is:unresolved"}
            )
        except httpx.RequestError as exc:
            raise ToolExecutionError(f"Sentry request failed: {exc}", tool_name="sentry") from exc

        if response.status_code != 200:
            raise ToolExecutionError(
                f"Sentry returned HTTP {response.status_code}",
                tool_name="sentry",
                context={"body": response.text[:500]},
            )
        try:
            issues = _ISSUES.validate_json(response.content)
        except ValidationError as exc:
            raise ToolExecutionError(f"Unexpected Sentry payload: {exc}", tool_name="sentry") from exc

        self._log.debug(f"Retrieved {len(issues)} Sentry issues")
        return issues

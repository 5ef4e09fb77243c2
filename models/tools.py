"""Tool input schemas, tool result payloads and the tool registry entry."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import Annotated

from models.conversation import ToolDefinition
from models.site import SitemapURL


class _ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# ── Tool inputs ───────────────────────────────────────────────────────────────


class SitemapToolInput(_ToolInput):
    base_url: str = Field(
        ...,
        alias="baseUrl",
        description="The base URL needed to get a website's sitemap",
    )


class GetContentToolInput(_ToolInput):
    urls: List[str] = Field(
        ...,
        description="Array of the URLs which content should be retrieved",
    )


class IssuesToolInput(_ToolInput):
    org_slug: str = Field(..., alias="orgSlug", description="The Sentry organization slug")
    project_slug: str = Field(..., alias="projectSlug", description="The Sentry project slug")


class FinalCriteriaToolInput(_ToolInput):
    tech_spec: str = Field(
        ...,
        alias="techSpec",
        description="The technical specification of the website",
    )
    criteria: str = Field(
        ...,
        description=(
            "The criteria to be used for the generation of the E2E tests. "
            "Separate individual criteria with a blank line."
        ),
    )


# ── Tool results ──────────────────────────────────────────────────────────────


class SentryIssue(BaseModel):
    """The fields of a Sentry issue that are useful as test context."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    short_id: Optional[str] = Field(default=None, alias="shortId")
    title: str = ""
    culprit: Optional[str] = None
    level: Optional[str] = None
    status: Optional[str] = None
    first_seen: Optional[str] = Field(default=None, alias="firstSeen")
    last_seen: Optional[str] = Field(default=None, alias="lastSeen")
    count: Optional[str] = None
    user_count: int = Field(default=0, alias="userCount")
    permalink: Optional[str] = None


class SitemapResult(BaseModel):
    kind: Literal["sitemap"] = "sitemap"
    urls: List[SitemapURL] = Field(default_factory=list)


class ContentResult(BaseModel):
    kind: Literal["content"] = "content"
    contents: Dict[str, str] = Field(default_factory=dict)


class IssuesResult(BaseModel):
    kind: Literal["issues"] = "issues"
    issues: List[SentryIssue] = Field(default_factory=list)


class FinalizeResult(BaseModel):
    kind: Literal["finalize"] = "finalize"
    tech_spec: str
    criteria: str
    content_map: Dict[str, str] = Field(default_factory=dict)


ToolResultPayload = Annotated[
    Union[SitemapResult, ContentResult, IssuesResult, FinalizeResult],
    Field(discriminator="kind"),
]

ToolHandler = Callable[[Any], Awaitable[ToolResultPayload]]


@dataclass(frozen=True)
class ToolSpec:
    """A tool the model may call: name, input schema and async handler."""

    name: str
    description: str
    input_model: Type[BaseModel]
    handler: ToolHandler

    @property
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name=self.name,
            description=self.description,
            input_schema=self.input_model.model_json_schema(),
        )

from .conversation import (
    Conversation,
    TextBlock,
    ToolDefinition,
    ToolInvocation,
    ToolResult,
    Turn,
)
from .site import CrawlResult, FetchedPage, SitemapURL
from .testing import (
    AnalyzerResult,
    CriterionOutcome,
    GeneratedTest,
    GeneratedTestLoose,
    GenEvalResult,
    LoopState,
    PipelineReport,
    TestArtifact,
    TestRunResult,
    Verdict,
)
from .tools import (
    ContentResult,
    FinalCriteriaToolInput,
    FinalizeResult,
    GetContentToolInput,
    IssuesResult,
    IssuesToolInput,
    SentryIssue,
    SitemapResult,
    SitemapToolInput,
    ToolResultPayload,
    ToolSpec,
)

__all__ = [
    "Conversation",
    "TextBlock",
    "ToolDefinition",
    "ToolInvocation",
    "ToolResult",
    "Turn",
    "CrawlResult",
    "FetchedPage",
    "SitemapURL",
    "AnalyzerResult",
    "CriterionOutcome",
    "GeneratedTest",
    "GeneratedTestLoose",
    "GenEvalResult",
    "LoopState",
    "PipelineReport",
    "TestArtifact",
    "TestRunResult",
    "Verdict",
    "ContentResult",
    "FinalCriteriaToolInput",
    "FinalizeResult",
    "GetContentToolInput",
    "IssuesResult",
    "IssuesToolInput",
    "SentryIssue",
    "SitemapResult",
    "SitemapToolInput",
    "ToolResultPayload",
    "ToolSpec",
]

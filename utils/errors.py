"""Exception hierarchy for the test bot."""

from __future__ import annotations

from typing import Any, Dict, Optional


class BotError(Exception):
    """Base exception for all bot errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class ConfigurationError(BotError):
    """Raised when required configuration is missing."""


# ── Input errors ──────────────────────────────────────────────────────────────


class InvalidURLError(BotError, ValueError):
    """Raised for an empty or unparseable URL."""


class ToolInputError(BotError):
    """Raised when a tool invocation names an unknown tool or carries bad input."""

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.tool_name = tool_name


# ── Tool loop ─────────────────────────────────────────────────────────────────


class ToolExecutionError(BotError):
    """Raised when a tool handler fails."""

    def __init__(
        self,
        message: str,
        tool_name: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context)
        self.tool_name = tool_name


class NoResultError(BotError):
    """The model stopped calling tools before calling the finalize tool."""


class ToolLoopError(BotError):
    """The tool loop ran past its turn budget."""


class SitemapNotFoundError(BotError):
    """No sitemap could be located for a site."""


# ── Transport ─────────────────────────────────────────────────────────────────


class ModelGatewayError(BotError):
    """Raised when the model API is unreachable or returns an unusable reply."""


class TestRunnerError(BotError):
    """Raised when the test runner process cannot be started."""

    __test__ = False


# ── Structured output ─────────────────────────────────────────────────────────


class StructuredOutputError(BotError):
    """Model JSON could not be decoded, even with the loose fallback."""


class ArtifactValidationError(BotError):
    """A decoded artifact is missing required fields."""


# ── Generate / evaluate loop ──────────────────────────────────────────────────


class StageError(BotError):
    """Wraps a failure of one generate/evaluate loop stage."""

    STAGES = ("setup", "generate", "execute", "evaluate")

    def __init__(
        self,
        stage: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        if stage not in self.STAGES:
            raise ValueError(f"Unknown stage: {stage}")
        super().__init__(f"{stage} failed: {message}", context)
        self.stage = stage

"""Shared fakes for the test suite: scripted model gateway and test runner."""

import json
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from clients.llm_client import ModelGateway  # noqa: E402
from clients.test_runner import TestRunner  # noqa: E402
from models.conversation import Conversation, TextBlock, ToolDefinition, ToolInvocation, Turn  # noqa: E402
from models.testing import TestRunResult  # noqa: E402


def assistant_call(name: str, arguments: Union[dict, str], call_id: Optional[str] = None) -> Turn:
    """An assistant turn invoking a single tool."""
    raw = arguments if isinstance(arguments, str) else json.dumps(arguments)
    return Turn(
        role="assistant",
        blocks=[ToolInvocation(id=call_id or f"call_{name}", name=name, arguments=raw)],
    )


class ScriptedGateway(ModelGateway):
    """Replays queued assistant turns and records every request."""

    def __init__(self, replies: Sequence[Union[Turn, Callable[..., Turn]]]) -> None:
        super().__init__(system_prompt="test system")
        self._replies = list(replies)
        self.calls: List[Dict] = []

    async def complete(
        self,
        conversation: Conversation,
        tools: Sequence[ToolDefinition],
        system: Optional[str] = None,
        tool_choice: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> Turn:
        self.calls.append(
            {
                "conversation": conversation.copy(),
                "tools": [t.name for t in tools],
                "system": system,
                "tool_choice": tool_choice,
            }
        )
        if not self._replies:
            raise AssertionError("ScriptedGateway ran out of replies")
        reply = self._replies.pop(0)
        if callable(reply):
            reply = reply(conversation=conversation, tools=tools, tool_choice=tool_choice)
        return reply


class StructuredGateway(ModelGateway):
    """Answers structured completions with queued raw JSON per forced tool name."""

    def __init__(self, responses: Dict[str, List[str]]) -> None:
        super().__init__()
        self._responses = {name: list(items) for name, items in responses.items()}
        self.requests: List[Dict] = []

    async def complete(self, conversation, tools, system=None, tool_choice=None, max_tokens=None) -> Turn:
        self.requests.append(
            {
                "tool": tool_choice,
                "conversation": conversation.copy(),
                "prompt": conversation.last_turn().text,
                "system": system,
            }
        )
        queue = self._responses.get(tool_choice) or []
        if not queue:
            raise AssertionError(f"No scripted response left for {tool_choice}")
        raw = queue[0] if len(queue) == 1 else queue.pop(0)
        return Turn(
            role="assistant",
            blocks=[TextBlock(text="ok"), ToolInvocation(id="call_1", name=tool_choice, arguments=raw)],
        )

    def count(self, tool_name: str) -> int:
        return sum(1 for r in self.requests if r["tool"] == tool_name)


class FakeRunner(TestRunner):
    """Returns queued run results (the last one repeats)."""

    def __init__(self, results: Optional[List[TestRunResult]] = None) -> None:
        self._results = list(results or [TestRunResult(output="1 passed", success=True)])
        self.paths: List[Optional[str]] = []

    async def run(self, test_path: Optional[str] = None) -> TestRunResult:
        self.paths.append(test_path)
        return self._results[0] if len(self._results) == 1 else self._results.pop(0)


def html_page(body: str, title: str = "page") -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


def site_transport(pages: Dict[str, Union[str, httpx.Response]]) -> httpx.MockTransport:
    """MockTransport serving *pages* by path (or full URL); everything else is 404."""

    def handler(request: httpx.Request) -> httpx.Response:
        for key in (str(request.url), request.url.path):
            if key in pages:
                page = pages[key]
                if isinstance(page, httpx.Response):
                    return page
                content_type = "text/html; charset=utf-8"
                if key.endswith((".xml", ".txt")) or page.lstrip().startswith("<?xml"):
                    content_type = "application/xml" if not key.endswith(".txt") else "text/plain"
                return httpx.Response(200, text=page, headers={"content-type": content_type})
        return httpx.Response(404, text="not found", headers={"content-type": "text/html"})

    return httpx.MockTransport(handler)


@pytest.fixture
def fake_runner():
    return FakeRunner()

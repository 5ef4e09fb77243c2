"""Tool orchestration loop.

Runs a conversation with the model until it calls the finalize tool:
every assistant turn is scanned for tool invocations, each invocation is
validated and dispatched to its handler, and the results go back to the
model as a single user turn.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from loguru import logger
from pydantic import ValidationError

from clients.llm_client import ModelGateway
from config.settings import settings
from models.conversation import Conversation, ToolInvocation, ToolResult, Turn
from models.tools import FinalizeResult, ToolSpec
from utils.errors import NoResultError, ToolExecutionError, ToolInputError, ToolLoopError


class ToolOrchestrationLoop:
    """
    Drive model turns and tool dispatch until the finalize tool is called.

    Args:
        gateway: Model to talk to.
        tools: Tool registry; names must be unique.
        finalize_tool: Name of the tool whose result ends the loop.
        system: Optional system prompt for every model turn.
        max_turns: Upper bound on model turns; 0 disables the bound.
    """

    def __init__(
        self,
        gateway: ModelGateway,
        tools: Sequence[ToolSpec],
        finalize_tool: str,
        system: Optional[str] = None,
        max_turns: Optional[int] = None,
        max_tokens: Optional[int] = None,
        log=None,
    ) -> None:
        registry: Dict[str, ToolSpec] = {}
        for tool in tools:
            if tool.name in registry:
                raise ValueError(f"Duplicate tool name: {tool.name}")
            registry[tool.name] = tool
        if finalize_tool not in registry:
            raise ValueError(f"Finalize tool {finalize_tool!r} is not registered")

        self._gateway = gateway
        self._tools = registry
        self._finalize_tool = finalize_tool
        self._system = system
        self._max_turns = settings.tool_loop_max_turns if max_turns is None else max_turns
        self._max_tokens = max_tokens
        self._log = log or logger.bind(component="tool_loop")
        self.conversation = Conversation()

    async def run(self, seed: str) -> FinalizeResult:
        """
        Run the loop from a single user message.

        Returns:
            The finalize tool's result.

        Raises:
            NoResultError: The model answered without invoking any tool.
            ToolInputError: Unknown tool or input failing its schema.
            ToolExecutionError: A handler failed.
            ToolLoopError: ``max_turns`` model turns passed without finalizing.
            ModelGatewayError: The model could not be reached.
        """
        self.conversation = Conversation([Turn.user_text(seed)])
        definitions = [tool.definition for tool in self._tools.values()]
        turns = 0

        while True:
            if self._max_turns and turns >= self._max_turns:
                raise ToolLoopError(
                    f"No final result after {turns} model turns",
                    {"max_turns": self._max_turns},
                )
            reply = await self._gateway.complete(
                self.conversation,
                definitions,
                system=self._system,
                max_tokens=self._max_tokens,
            )
            turns += 1
            self.conversation.append(reply)

            for block in reply.blocks:
                if block.kind == "text" and block.text.strip():
                    self._log.debug(f"model: {block.text.strip()[:200]}")

            invocations = reply.invocations
            if not invocations:
                raise NoResultError(
                    "Model stopped calling tools before the final result",
                    {"turns": turns, "text": reply.text[:500]},
                )

            results: List[ToolResult] = []
            for invocation in invocations:
                payload = await self._dispatch(invocation)
                if payload.kind == "finalize":
                    self._log.success(f"Final result after {turns} model turns.")
                    return payload
                results.append(
                    ToolResult(invocation_id=invocation.id, payload=payload.model_dump_json())
                )

            self.conversation.append(Turn.tool_results(results))

    async def _dispatch(self, invocation: ToolInvocation):
        tool = self._tools.get(invocation.name)
        if tool is None:
            raise ToolInputError(f"Unknown tool: {invocation.name}", tool_name=invocation.name)

        try:
            params = tool.input_model.model_validate_json(invocation.arguments or "{}")
        except ValidationError as exc:
            raise ToolInputError(
                f"Invalid input for {invocation.name}: {exc}",
                tool_name=invocation.name,
                context={"arguments": invocation.arguments},
            ) from exc

        self._log.info(f"→ {invocation.name} {invocation.arguments[:200]}")
        try:
            return await tool.handler(params)
        except (ToolInputError, ToolExecutionError):
            raise
        except Exception as exc:
            raise ToolExecutionError(
                f"{invocation.name} failed: {exc}",
                tool_name=invocation.name,
            ) from exc

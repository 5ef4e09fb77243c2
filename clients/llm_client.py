"""Language-model gateway.

``ModelGateway`` is the narrow contract the orchestration loops talk to:
one ``complete`` call per model turn, plus ``structured_completion`` which
forces a single tool and returns its raw JSON arguments. ``OpenAIModelGateway``
implements it on top of the chat-completions tool-calling API, against either
Azure OpenAI or OpenAI.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
from azure.identity import DefaultAzureCredential, get_bearer_token_provider
from loguru import logger
from openai import AsyncAzureOpenAI, AsyncOpenAI, OpenAIError

from config.settings import settings
from models.conversation import (
    Conversation,
    TextBlock,
    ToolDefinition,
    ToolInvocation,
    ToolResult,
    Turn,
)
from utils.errors import ConfigurationError, ModelGatewayError

TOOL_USE_INSTRUCTIONS = (
    "In this environment you have access to a set of tools you can use to answer "
    "the user's request. You should use JSON format. Specifications are available "
    "in JSONSchema format."
)

LLMClient = Union[AsyncAzureOpenAI, AsyncOpenAI]


class ModelGateway(ABC):
    """Send a conversation plus tool definitions to a model, get one turn back."""

    def __init__(self, system_prompt: str = "", log=None) -> None:
        self.system_prompt = system_prompt
        self._log = log or logger.bind(component="model")

    @abstractmethod
    async def complete(
        self,
        conversation: Conversation,
        tools: Sequence[ToolDefinition],
        system: Optional[str] = None,
        tool_choice: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> Turn:
        """Return the model's next assistant turn.

        ``tool_choice`` names a tool the model is forced to call.
        Raises ``ModelGatewayError`` when the model cannot be reached.
        """

    async def structured_completion(
        self,
        prompt: str,
        tool: ToolDefinition,
        context: Optional[str] = None,
        history: Optional[Conversation] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Force a call to *tool* and return the raw JSON of its arguments.

        *context* is appended to the system prompt; *history* (left untouched)
        is replayed before *prompt*.
        """
        system = "\n\n".join(part for part in (self.system_prompt, TOOL_USE_INSTRUCTIONS, context) if part)
        conversation = history.copy() if history is not None else Conversation()
        conversation.append(Turn.user_text(prompt))

        reply = await self.complete(
            conversation,
            [tool],
            system=system,
            tool_choice=tool.name,
            max_tokens=max_tokens,
        )
        for invocation in reply.invocations:
            if invocation.name == tool.name:
                return invocation.arguments
        raise ModelGatewayError("message content missing", {"tool": tool.name})


# ── OpenAI / Azure OpenAI ─────────────────────────────────────────────────────


def build_openai_client(timeout: Optional[float] = None) -> LLMClient:
    """Azure OpenAI when an endpoint is configured (key or Entra ID), else OpenAI."""
    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(timeout or settings.llm_timeout_seconds, connect=10.0)
    )
    if settings.azure_openai_endpoint:
        client_kwargs: dict = {
            "azure_endpoint": settings.azure_openai_endpoint,
            "api_version": settings.azure_openai_api_version,
            "http_client": http_client,
        }
        if settings.azure_openai_api_key:
            client_kwargs["api_key"] = settings.azure_openai_api_key
        else:
            token_provider = get_bearer_token_provider(
                DefaultAzureCredential(), "https://cognitiveservices.azure.com/.default"
            )
            client_kwargs["azure_ad_token_provider"] = token_provider
        return AsyncAzureOpenAI(**client_kwargs)

    if settings.openai_api_key:
        return AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            http_client=http_client,
        )

    raise ConfigurationError(
        "No language model configured: set AZURE_OPENAI_ENDPOINT or OPENAI_API_KEY."
    )


def to_openai_messages(conversation: Conversation, system: Optional[str] = None) -> List[Dict[str, Any]]:
    """Map conversation turns onto chat-completions messages."""
    messages: List[Dict[str, Any]] = []
    if system:
        messages.append({"role": "system", "content": system})

    for turn in conversation:
        if turn.role == "assistant":
            message: Dict[str, Any] = {"role": "assistant", "content": turn.text or None}
            if turn.invocations:
                message["tool_calls"] = [
                    {
                        "id": inv.id,
                        "type": "function",
                        "function": {"name": inv.name, "arguments": inv.arguments},
                    }
                    for inv in turn.invocations
                ]
            messages.append(message)
            continue

        for result in turn.results:
            messages.append(
                {"role": "tool", "tool_call_id": result.invocation_id, "content": result.payload}
            )
        if turn.text:
            messages.append({"role": "user", "content": turn.text})
    return messages


def to_openai_tool(tool: ToolDefinition) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": tool.name,
            "description": tool.description,
            "parameters": tool.input_schema,
        },
    }


def from_openai_message(message: Any) -> Turn:
    """Convert a chat-completions assistant message into a Turn."""
    blocks: List[Union[TextBlock, ToolInvocation, ToolResult]] = []
    if message.content:
        blocks.append(TextBlock(text=message.content))
    for call in message.tool_calls or []:
        if call.function is None:
            continue
        blocks.append(
            ToolInvocation(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "{}",
            )
        )
    return Turn(role="assistant", blocks=blocks)


class OpenAIModelGateway(ModelGateway):
    """ModelGateway over ``chat.completions`` with function tools."""

    def __init__(
        self,
        client: Optional[LLMClient] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        system_prompt: str = "",
        log=None,
    ) -> None:
        super().__init__(system_prompt=system_prompt, log=log)
        self._client = client if client is not None else build_openai_client()
        self._model = model or settings.analyzer_model
        self._max_tokens = max_tokens or settings.analyzer_max_tokens

    async def complete(
        self,
        conversation: Conversation,
        tools: Sequence[ToolDefinition],
        system: Optional[str] = None,
        tool_choice: Optional[str] = None,
        max_tokens: Optional[int] = None,
    ) -> Turn:
        kwargs: Dict[str, Any] = {
            "model": self._model,
            "messages": to_openai_messages(conversation, system if system is not None else self.system_prompt),
            "max_tokens": max_tokens or self._max_tokens,
        }
        if tools:
            kwargs["tools"] = [to_openai_tool(tool) for tool in tools]
        if tool_choice:
            kwargs["tool_choice"] = {"type": "function", "function": {"name": tool_choice}}

        self._log.debug(f"{self._model}: {len(kwargs['messages'])} messages, {len(tools)} tools")
        try:
            response = await self._client.chat.completions.create(**kwargs)
        except OpenAIError as exc:
            raise ModelGatewayError(f"Model call failed: {exc}", {"model": self._model}) from exc

        if not response.choices:
            raise ModelGatewayError("Model returned no choices", {"model": self._model})
        return from_openai_message(response.choices[0].message)

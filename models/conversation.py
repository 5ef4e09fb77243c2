"""Conversation log shared by the model gateway and the orchestration loops.

A conversation is an append-only list of turns. Each turn belongs to the user
or the assistant and carries one or more blocks: free text, a tool invocation
issued by the model, or a tool result answering an invocation.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field
from typing_extensions import Annotated


class TextBlock(BaseModel):
    kind: Literal["text"] = "text"
    text: str


class ToolInvocation(BaseModel):
    """A model request to call a named tool; ``arguments`` is the raw JSON text."""

    kind: Literal["tool_invocation"] = "tool_invocation"
    id: str
    name: str
    arguments: str = "{}"

    @property
    def input(self) -> Any:
        return json.loads(self.arguments)


class ToolResult(BaseModel):
    kind: Literal["tool_result"] = "tool_result"
    invocation_id: str
    payload: str
    is_error: bool = False


Block = Annotated[Union[TextBlock, ToolInvocation, ToolResult], Field(discriminator="kind")]


class Turn(BaseModel):
    role: Literal["user", "assistant"]
    blocks: List[Block] = Field(default_factory=list)

    @classmethod
    def user_text(cls, text: str) -> "Turn":
        return cls(role="user", blocks=[TextBlock(text=text)])

    @classmethod
    def assistant_text(cls, text: str) -> "Turn":
        return cls(role="assistant", blocks=[TextBlock(text=text)])

    @classmethod
    def tool_results(cls, results: Iterable[ToolResult]) -> "Turn":
        return cls(role="user", blocks=list(results))

    @property
    def text(self) -> str:
        return "\n".join(b.text for b in self.blocks if isinstance(b, TextBlock))

    @property
    def invocations(self) -> List[ToolInvocation]:
        return [b for b in self.blocks if isinstance(b, ToolInvocation)]

    @property
    def results(self) -> List[ToolResult]:
        return [b for b in self.blocks if isinstance(b, ToolResult)]


class ToolDefinition(BaseModel):
    """Tool schema as declared to the model."""

    name: str
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict)


class Conversation:
    """Append-only turn log.

    Tool results must answer exactly the invocations of the assistant turn
    right before them; a terminal finalize invocation is never answered
    because the loop stops there.
    """

    def __init__(self, turns: Optional[Iterable[Turn]] = None) -> None:
        self._turns: List[Turn] = []
        for turn in turns or []:
            self.append(turn)

    def append(self, turn: Turn) -> None:
        results = turn.results
        if results:
            previous = self.last_turn()
            if previous is None or previous.role != "assistant":
                raise ValueError("Tool results must follow an assistant turn.")
            expected = {inv.id for inv in previous.invocations}
            answered = [r.invocation_id for r in results]
            if len(answered) != len(set(answered)) or set(answered) != expected:
                raise ValueError(
                    f"Tool results {sorted(answered)} do not match invocations {sorted(expected)}."
                )
        self._turns.append(turn)

    def last_turn(self) -> Optional[Turn]:
        return self._turns[-1] if self._turns else None

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def copy(self) -> "Conversation":
        clone = Conversation()
        clone._turns = list(self._turns)
        return clone

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

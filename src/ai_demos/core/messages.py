from __future__ import annotations

import uuid
from typing import Annotated, Any, Literal

import pydantic

# Streaming state for text parts
PartState = Literal["streaming", "done"]

# Tool invocation lifecycle, shared with the AI SDK UI protocol.
ToolState = Literal[
    "input-streaming",
    "input-available",
    "output-available",
    "output-error",
]

_TOOL_TRANSITIONS: dict[str, frozenset[str]] = {
    "input-streaming": frozenset({"input-available"}),
    "input-available": frozenset({"output-available", "output-error"}),
    "output-available": frozenset(),
    "output-error": frozenset(),
}

TERMINAL_TOOL_STATES: frozenset[str] = frozenset({"output-available", "output-error"})


class InvalidToolTransition(Exception):
    """Raised when a tool call is moved along an edge the lifecycle forbids."""

    def __init__(self, tool_call_id: str, current: str, requested: str) -> None:
        super().__init__(
            f"Tool call {tool_call_id!r} cannot move from {current!r} to {requested!r}"
        )
        self.tool_call_id = tool_call_id
        self.current = current
        self.requested = requested


def can_transition(current: str, requested: str) -> bool:
    return requested in _TOOL_TRANSITIONS.get(current, frozenset())


class TextPart(pydantic.BaseModel):
    text: str
    type: Literal["text"] = "text"
    # Streaming state
    state: PartState | None = None  # None = finalized/restored from request
    delta: str | None = None  # Current delta, None when not actively streaming


class FilePart(pydantic.BaseModel):
    """An attachment: either a URL (http(s) or data:) or inline base64 data."""

    media_type: str
    url: str | None = None
    data: str | None = None
    filename: str | None = None
    type: Literal["file"] = "file"

    @pydantic.model_validator(mode="after")
    def _exactly_one_source(self) -> FilePart:
        if (self.url is None) == (self.data is None):
            raise ValueError("FilePart needs exactly one of 'url' or 'data'")
        return self

    @property
    def inline_data(self) -> str | None:
        """Base64 payload, whether given inline or as a data: URL."""
        if self.data is not None:
            return self.data
        if self.url and self.url.startswith("data:") and "," in self.url:
            return self.url.split(",", 1)[1]
        return None


class ToolPart(pydantic.BaseModel):
    tool_call_id: str
    tool_name: str
    tool_args: str
    state: ToolState = "input-available"
    result: Any = None
    error_text: str | None = None
    provider_executed: bool | None = None
    type: Literal["tool"] = "tool"
    args_delta: str | None = None  # Delta for tool_args while input-streaming

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_TOOL_STATES

    def advance(self, new_state: ToolState) -> None:
        """Move along the lifecycle, refusing any edge it does not allow."""
        if not can_transition(self.state, new_state):
            raise InvalidToolTransition(self.tool_call_id, self.state, new_state)
        self.state = new_state

    def set_result(self, result: Any) -> None:
        """Set the tool result and mark as completed."""
        self.advance("output-available")
        self.result = result

    def set_error(self, message: str) -> None:
        """Set a tool error and mark as failed."""
        self.advance("output-error")
        self.error_text = message


class SourcePart(pydantic.BaseModel):
    """A citation returned by a provider-executed web search."""

    source_id: str
    url: str
    title: str | None = None
    type: Literal["source"] = "source"


Part = Annotated[
    TextPart | FilePart | ToolPart | SourcePart,
    pydantic.Field(discriminator="type"),
]


def _gen_id() -> str:
    return uuid.uuid4().hex[:12]


class ToolDelta(pydantic.BaseModel):
    tool_call_id: str
    tool_name: str
    args_delta: str


class Message(pydantic.BaseModel):
    role: Literal["user", "assistant", "system"]
    parts: list[Part]
    id: str = pydantic.Field(default_factory=_gen_id)

    @property
    def is_done(self) -> bool:
        """Message is done when no part is still streaming."""
        for part in self.parts:
            if isinstance(part, TextPart) and part.state == "streaming":
                return False
            if isinstance(part, ToolPart) and part.state == "input-streaming":
                return False
        return True

    @property
    def text_delta(self) -> str:
        """Get current text delta from parts."""
        for part in self.parts:
            if isinstance(part, TextPart) and part.delta:
                return part.delta
        return ""

    @property
    def tool_deltas(self) -> list[ToolDelta]:
        """Get current tool deltas from parts."""
        deltas = []
        for part in self.parts:
            if isinstance(part, ToolPart) and part.args_delta:
                deltas.append(
                    ToolDelta(
                        tool_call_id=part.tool_call_id,
                        tool_name=part.tool_name,
                        args_delta=part.args_delta,
                    )
                )
        return deltas

    @property
    def text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def files(self) -> list[FilePart]:
        return [part for part in self.parts if isinstance(part, FilePart)]

    @property
    def sources(self) -> list[SourcePart]:
        return [part for part in self.parts if isinstance(part, SourcePart)]

    @property
    def tool_calls(self) -> list[ToolPart]:
        return [part for part in self.parts if isinstance(part, ToolPart)]

    @property
    def unresolved_tool_calls(self) -> list[ToolPart]:
        """Tool calls whose input is complete but that have no output yet."""
        return [tc for tc in self.tool_calls if tc.state == "input-available"]

    def get_tool_part(self, tool_call_id: str) -> ToolPart | None:
        for part in self.parts:
            if isinstance(part, ToolPart) and part.tool_call_id == tool_call_id:
                return part
        return None


def make_messages(*, system: str | None = None, user: str) -> list[Message]:
    """Convenience builder for common system + user message pattern."""
    result: list[Message] = []
    if system is not None:
        result.append(Message(role="system", parts=[TextPart(text=system)]))
    result.append(Message(role="user", parts=[TextPart(text=user)]))
    return result

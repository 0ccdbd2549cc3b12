"""Request-side message models: the `messages` array the browser posts.

Each demo endpoint takes the whole conversation on every call. Parts that the
server has no use for (reasoning, data-*, dynamic tools) are dropped while
parsing so a newer frontend does not break older endpoints.
"""

from __future__ import annotations

import uuid
from typing import Any, Literal, cast

import pydantic


def _generate_id(prefix: str = "id") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class UITextPart(pydantic.BaseModel):
    """Plain text typed by the user or streamed by the model."""

    type: Literal["text"] = "text"
    text: str
    state: Literal["streaming", "done"] | None = None


# Same lifecycle as core.messages.ToolState, spelled as the browser sends it.
UIToolInvocationState = Literal[
    "input-streaming",
    "input-available",
    "output-available",
    "output-error",
]


class UIStepStartPart(pydantic.BaseModel):
    """Marks where one model call ended and the next began."""

    type: Literal["step-start"] = "step-start"


class UIToolPart(pydantic.BaseModel):
    """One tool call and, once known, its outcome.

    The tool name only appears inside the part type, e.g. ``tool-get_weather``.
    """

    model_config = pydantic.ConfigDict(populate_by_name=True)

    type: str
    tool_call_id: str = pydantic.Field(alias="toolCallId")
    state: UIToolInvocationState
    input: str | dict[str, Any] | None = None
    output: Any | None = None
    error_text: str | None = pydantic.Field(default=None, alias="errorText")
    provider_executed: bool | None = pydantic.Field(
        default=None, alias="providerExecuted"
    )

    @property
    def tool_name(self) -> str:
        return self.type.removeprefix("tool-")

    @classmethod
    def for_tool(
        cls, tool_name: str, tool_call_id: str, **fields: Any
    ) -> UIToolPart:
        return cls(type=f"tool-{tool_name}", tool_call_id=tool_call_id, **fields)


class UIFilePart(pydantic.BaseModel):
    """File attachment, usually a data: URL built by the browser."""

    model_config = pydantic.ConfigDict(populate_by_name=True)

    type: Literal["file"] = "file"
    media_type: str = pydantic.Field(alias="mediaType")
    url: str
    filename: str | None = None


class UISourceUrlPart(pydantic.BaseModel):
    """A web page the answer cites (web search endpoint)."""

    model_config = pydantic.ConfigDict(populate_by_name=True)

    type: Literal["source-url"] = "source-url"
    source_id: str = pydantic.Field(alias="sourceId")
    url: str
    title: str | None = None


UIMessagePart = (
    UITextPart | UIStepStartPart | UIToolPart | UIFilePart | UISourceUrlPart
)


_STATIC_UI_PART_TYPES: dict[str, type[pydantic.BaseModel]] = {
    "text": UITextPart,
    "step-start": UIStepStartPart,
    "file": UIFilePart,
    "source-url": UISourceUrlPart,
}


def _parse_ui_part(part_data: dict[str, Any]) -> UIMessagePart | None:
    """None means the part is ignored."""
    part_type = part_data.get("type", "")

    if model_cls := _STATIC_UI_PART_TYPES.get(part_type):
        return cast(UIMessagePart, model_cls.model_validate(part_data))

    match part_type:
        case str() as t if t.startswith("tool-"):
            return UIToolPart.model_validate(part_data)
        case _:
            # reasoning, data-*, dynamic-tool and unknown parts are skipped
            return None


class UIMessage(pydantic.BaseModel):
    """One entry of the posted conversation."""

    model_config = pydantic.ConfigDict(populate_by_name=True)

    id: str = pydantic.Field(default_factory=lambda: _generate_id("msg"))
    role: Literal["user", "assistant", "system"]
    parts: list[UIMessagePart] = pydantic.Field(default_factory=list)

    @pydantic.field_validator("parts", mode="before")
    @classmethod
    def parse_parts(cls, v: list[dict[str, Any]]) -> list[UIMessagePart]:
        if not isinstance(v, list):
            return v
        result: list[UIMessagePart] = []
        for part_data in v:
            if isinstance(part_data, dict):
                parsed = _parse_ui_part(part_data)
                if parsed is not None:
                    result.append(parsed)
            else:
                # Already parsed (e.g., built by the client reducer)
                result.append(part_data)
        return result

    @property
    def text(self) -> str:
        return "".join(p.text for p in self.parts if isinstance(p, UITextPart))

    @property
    def tool_parts(self) -> list[UIToolPart]:
        return [p for p in self.parts if isinstance(p, UIToolPart)]

    def get_tool_part(self, tool_call_id: str) -> UIToolPart | None:
        for part in self.tool_parts:
            if part.tool_call_id == tool_call_id:
                return part
        return None

    def to_wire(self) -> dict[str, Any]:
        """camelCase dict as the browser would send it back."""
        return self.model_dump(by_alias=True, exclude_none=True)


def user_message(text: str, files: list[UIFilePart] | None = None) -> UIMessage:
    parts: list[UIMessagePart] = [UITextPart(text=text)]
    if files:
        parts.extend(files)
    return UIMessage(role="user", parts=parts)

"""Both directions of the browser protocol.

Outgoing: internal Message snapshots become UI message stream parts (SSE).
Incoming: the posted UIMessage history becomes internal Messages.

Wire format: https://ai-sdk.dev/docs/ai-sdk-ui/stream-protocol
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import AsyncGenerator, AsyncIterable
from typing import Any

from ..core import errors as errors_
from ..core import messages as messages_
from ..core import structured as structured_
from . import protocol, ui_message

logger = logging.getLogger(__name__)


# ============================================================================
# Serialization utilities
# ============================================================================


def _to_camel_case(snake_str: str) -> str:
    """Convert snake_case to camelCase."""
    components = snake_str.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def serialize_part(part: protocol.UIMessageStreamPart) -> str:
    """Serialize a stream part to JSON with camelCase keys."""
    d = dataclasses.asdict(part)
    camel_dict = {_to_camel_case(k): v for k, v in d.items() if v is not None}
    return json.dumps(camel_dict, default=str)


def format_sse(part: protocol.UIMessageStreamPart) -> str:
    """Format a stream part as an SSE data line."""
    return f"data: {serialize_part(part)}\n\n"


def _parse_tool_input(tool_args: str) -> Any:
    if not tool_args:
        return {}
    try:
        return json.loads(tool_args)
    except json.JSONDecodeError:
        return tool_args


# ============================================================================
# Internal Message → UI Message Stream Conversion
# ============================================================================


class _StreamState:
    """Tracks state for UI message stream event sequencing.

    Encapsulates the mutable state needed to sequence events (text blocks,
    steps, tool calls) when converting an internal message stream to the
    AI SDK UI protocol. Every tool event is emitted at most once, so repeated
    snapshots of the same message are safe to feed in.
    """

    def __init__(self) -> None:
        self.text_id: str | None = None
        self.message_id: str | None = None
        self.emitted_start: bool = False
        self.in_step: bool = False
        self.streamed_text: set[str] = set()  # message ids with text deltas
        self.started_tool_calls: set[str] = set()
        self.available_tool_calls: set[str] = set()
        self.finished_tool_calls: set[str] = set()
        self.emitted_sources: set[str] = set()

    def close_text(self) -> list[protocol.UIMessageStreamPart]:
        if self.text_id:
            part = protocol.TextEndPart(id=self.text_id)
            self.text_id = None
            return [part]
        return []

    def finish_step(self) -> list[protocol.UIMessageStreamPart]:
        """Close open blocks and finish the current step if active."""
        parts = self.close_text()
        if self.in_step:
            parts.append(protocol.FinishStepPart())
            self.in_step = False
        return parts

    def begin_message(
        self, msg: messages_.Message
    ) -> list[protocol.UIMessageStreamPart]:
        """Handle message/step boundaries, returning parts to emit.

        The first message opens the UI message; every later message id is a
        new step of the same UI message.
        """
        parts: list[protocol.UIMessageStreamPart] = []
        if not self.emitted_start:
            parts.append(protocol.StartPart(message_id=msg.id))
            parts.append(protocol.StartStepPart())
            self.emitted_start = True
            self.in_step = True
            self.message_id = msg.id
        elif msg.id != self.message_id:
            parts.extend(self.finish_step())
            parts.append(protocol.StartStepPart())
            self.in_step = True
            self.message_id = msg.id
        return parts


def _message_parts(
    state: _StreamState, msg: messages_.Message
) -> list[protocol.UIMessageStreamPart]:
    out: list[protocol.UIMessageStreamPart] = list(state.begin_message(msg))

    # Handle text streaming (deltas)
    if delta := msg.text_delta:
        if not state.text_id:
            state.text_id = ui_message._generate_id("text")
            out.append(protocol.TextStartPart(id=state.text_id))
        out.append(protocol.TextDeltaPart(id=state.text_id, delta=delta))
        state.streamed_text.add(msg.id)

    text_streaming = any(
        isinstance(p, messages_.TextPart) and p.state == "streaming"
        for p in msg.parts
    )
    if state.text_id and not text_streaming:
        out.extend(state.close_text())

    # Text that arrived whole (restored or non-streaming providers)
    if msg.is_done and msg.text and msg.id not in state.streamed_text:
        state.streamed_text.add(msg.id)
        text_id = ui_message._generate_id("text")
        out.append(protocol.TextStartPart(id=text_id))
        out.append(protocol.TextDeltaPart(id=text_id, delta=msg.text))
        out.append(protocol.TextEndPart(id=text_id))

    # Handle streaming tool call arguments
    for tool_delta in msg.tool_deltas:
        tc_id = tool_delta.tool_call_id
        if tc_id not in state.started_tool_calls:
            state.started_tool_calls.add(tc_id)
            out.append(
                protocol.ToolInputStartPart(
                    tool_call_id=tc_id, tool_name=tool_delta.tool_name
                )
            )
        out.append(
            protocol.ToolInputDeltaPart(
                tool_call_id=tc_id, input_text_delta=tool_delta.args_delta
            )
        )

    # Tool inputs first, then outputs (same step as the input per protocol)
    for part in msg.tool_calls:
        tc_id = part.tool_call_id
        if part.state == "input-streaming":
            if tc_id not in state.started_tool_calls:
                state.started_tool_calls.add(tc_id)
                out.append(
                    protocol.ToolInputStartPart(
                        tool_call_id=tc_id,
                        tool_name=part.tool_name,
                        provider_executed=part.provider_executed,
                    )
                )
            continue
        if tc_id not in state.available_tool_calls:
            if tc_id not in state.started_tool_calls:
                state.started_tool_calls.add(tc_id)
                out.append(
                    protocol.ToolInputStartPart(
                        tool_call_id=tc_id,
                        tool_name=part.tool_name,
                        provider_executed=part.provider_executed,
                    )
                )
            state.available_tool_calls.add(tc_id)
            out.append(
                protocol.ToolInputAvailablePart(
                    tool_call_id=tc_id,
                    tool_name=part.tool_name,
                    input=_parse_tool_input(part.tool_args),
                    provider_executed=part.provider_executed,
                )
            )

    for part in msg.tool_calls:
        tc_id = part.tool_call_id
        if tc_id in state.finished_tool_calls:
            continue
        match part.state:
            case "output-available":
                state.finished_tool_calls.add(tc_id)
                out.append(
                    protocol.ToolOutputAvailablePart(
                        tool_call_id=tc_id,
                        output=part.result,
                        provider_executed=part.provider_executed,
                    )
                )
            case "output-error":
                state.finished_tool_calls.add(tc_id)
                out.append(
                    protocol.ToolOutputErrorPart(
                        tool_call_id=tc_id,
                        error_text=part.error_text or "Tool execution failed",
                        provider_executed=part.provider_executed,
                    )
                )

    for source in msg.sources:
        if source.source_id not in state.emitted_sources:
            state.emitted_sources.add(source.source_id)
            out.append(
                protocol.SourceUrlPart(
                    source_id=source.source_id, url=source.url, title=source.title
                )
            )

    return out


async def to_ui_message_stream(
    messages: AsyncIterable[messages_.Message],
) -> AsyncGenerator[protocol.UIMessageStreamPart]:
    """
    Convert an internal message stream into AI SDK UI message stream parts.

    A failure while producing messages is reported as an ``error`` part and
    the stream is finished with ``finish_reason="error"`` instead of raising.
    """
    state = _StreamState()
    finish_reason: protocol.FinishReason = "stop"

    try:
        async for msg in messages:
            for part in _message_parts(state, msg):
                yield part
    except Exception as exc:
        kind = errors_.classify_exception(exc)
        logger.exception("Stream failed (%s)", kind.value)
        if not state.emitted_start:
            yield protocol.StartPart()
            state.emitted_start = True
        for part in state.close_text():
            yield part
        yield protocol.ErrorPart(error_text=errors_.user_message(kind))
        finish_reason = "error"

    # Final cleanup
    for part in state.finish_step():
        yield part
    if state.emitted_start:
        yield protocol.FinishPart(finish_reason=finish_reason)


async def to_sse_stream(
    messages: AsyncIterable[messages_.Message],
) -> AsyncGenerator[str]:
    """Convert an internal message stream directly into SSE-formatted strings."""
    async for part in to_ui_message_stream(messages):
        yield format_sse(part)
    yield f"data: {protocol.DONE_SENTINEL}\n\n"


async def to_text_stream(
    chunks: AsyncIterable[structured_.ObjectChunk],
) -> AsyncGenerator[str]:
    """Raw JSON text of a structured output, as it is generated.

    A plain text body has no error channel, so a failure ends the body early
    and the client sees an incomplete document.
    """
    try:
        async for chunk in chunks:
            if chunk.text_delta:
                yield chunk.text_delta
    except Exception:
        logger.exception("Structured output stream failed")


# ============================================================================
# UI → Internal message conversion
# ============================================================================


def _normalize_tool_args(tool_input: str | dict[str, Any] | None) -> str:
    """Normalize tool input (JSON string, dict, or None) to a JSON string."""
    match tool_input:
        case str():
            return tool_input
        case dict():
            return json.dumps(tool_input)
        case _:
            return "{}"


def _convert_part(part: ui_message.UIMessagePart) -> messages_.Part | None:
    match part:
        case ui_message.UITextPart(text=text) if text:
            return messages_.TextPart(text=text)
        case ui_message.UIFilePart() as fp:
            return messages_.FilePart(
                media_type=fp.media_type, url=fp.url, filename=fp.filename
            )
        case ui_message.UIToolPart() as tp:
            return messages_.ToolPart(
                tool_call_id=tp.tool_call_id,
                tool_name=tp.tool_name,
                tool_args=_normalize_tool_args(tp.input),
                state=tp.state,
                result=tp.output,
                error_text=tp.error_text,
                provider_executed=tp.provider_executed,
            )
        case ui_message.UISourceUrlPart() as sp:
            return messages_.SourcePart(
                source_id=sp.source_id, url=sp.url, title=sp.title
            )
    return None


def to_messages(
    ui_messages: list[ui_message.UIMessage],
) -> list[messages_.Message]:
    """Convert AI SDK v6 UI messages to internal Message format.

    Assistant messages are split at ``step-start`` markers so every model
    step becomes its own internal message, keeping tool results ahead of the
    text the model wrote after seeing them.

    Raises:
        ValueError: a user or system message has no content.
    """
    result: list[messages_.Message] = []

    for ui_msg in ui_messages:
        steps: list[list[messages_.Part]] = [[]]

        for part in ui_msg.parts:
            if isinstance(part, ui_message.UIStepStartPart):
                if steps[-1]:
                    steps.append([])
                continue
            converted = _convert_part(part)
            if converted is not None:
                steps[-1].append(converted)

        # User/system messages need content; assistant messages may be empty.
        if ui_msg.role in ("user", "system") and not steps[0]:
            raise ValueError(
                f"Message '{ui_msg.id}' has role '{ui_msg.role}' but no content. "
                "User and system messages require non-empty content."
            )

        for index, parts in enumerate(steps):
            if not parts and index > 0:
                continue
            result.append(
                messages_.Message(
                    id=ui_msg.id if index == 0 else f"{ui_msg.id}-{index}",
                    role=ui_msg.role,
                    parts=parts,
                )
            )

    return result

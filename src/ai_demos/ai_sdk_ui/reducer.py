"""Client-side state machine for the UI message stream.

Mirrors what ``useChat`` does in the browser: events are applied strictly in
arrival order to the last assistant message, and every tool call is only
allowed to move along ``input-streaming -> input-available -> output-*``.
"""

from __future__ import annotations

from typing import Any

from ..core import messages as messages_
from ..core import partial_json
from . import protocol, ui_message


class StreamProtocolError(Exception):
    """The server sent an event that does not fit the current state."""


class UIMessageReducer:
    def __init__(self, message: ui_message.UIMessage | None = None) -> None:
        # An existing assistant message is continued, as after a client tool result.
        self.message = message
        self.finished = False
        self.aborted = False
        self.error_text: str | None = None
        self.finish_reason: str | None = None
        self.tool_states: dict[str, list[str]] = {}
        self._text_parts: dict[str, ui_message.UITextPart] = {}
        self._tool_input_text: dict[str, str] = {}

    # -- applying events ------------------------------------------------------

    def apply(self, part: protocol.UIMessageStreamPart) -> None:
        if self.finished:
            raise StreamProtocolError(
                f"Received {part.type!r} after the stream finished"
            )

        if isinstance(part, protocol.StartPart):
            if self.message is None:
                self.message = ui_message.UIMessage(
                    id=part.message_id or ui_message._generate_id("msg"),
                    role="assistant",
                )
            return

        msg = self._require_message(part)

        match part:
            case protocol.StartStepPart():
                msg.parts.append(ui_message.UIStepStartPart())

            case protocol.TextStartPart(id=text_id):
                if text_id in self._text_parts:
                    raise StreamProtocolError(f"Text block {text_id!r} started twice")
                text_part = ui_message.UITextPart(text="", state="streaming")
                self._text_parts[text_id] = text_part
                msg.parts.append(text_part)

            case protocol.TextDeltaPart(id=text_id, delta=delta):
                self._open_text(text_id).text += delta

            case protocol.TextEndPart(id=text_id):
                self._open_text(text_id).state = "done"

            case protocol.ToolInputStartPart() as p:
                if msg.get_tool_part(p.tool_call_id) is not None:
                    raise StreamProtocolError(
                        f"Tool call {p.tool_call_id!r} started twice"
                    )
                msg.parts.append(
                    ui_message.UIToolPart.for_tool(
                        p.tool_name,
                        p.tool_call_id,
                        state="input-streaming",
                        provider_executed=p.provider_executed,
                    )
                )
                self.tool_states[p.tool_call_id] = ["input-streaming"]
                self._tool_input_text[p.tool_call_id] = ""

            case protocol.ToolInputDeltaPart() as p:
                tool_part = self._tool(p.tool_call_id)
                if tool_part.state != "input-streaming":
                    raise StreamProtocolError(
                        f"Input delta for {p.tool_call_id!r} "
                        f"in state {tool_part.state!r}"
                    )
                text = self._tool_input_text[p.tool_call_id] + p.input_text_delta
                self._tool_input_text[p.tool_call_id] = text
                try:
                    tool_part.input = partial_json.parse_partial_json(text)
                except ValueError:
                    pass

            case protocol.ToolInputAvailablePart() as p:
                tool_part = msg.get_tool_part(p.tool_call_id)
                if tool_part is None:
                    # Inputs that were not streamed arrive complete.
                    tool_part = ui_message.UIToolPart.for_tool(
                        p.tool_name,
                        p.tool_call_id,
                        state="input-available",
                        provider_executed=p.provider_executed,
                    )
                    msg.parts.append(tool_part)
                    self.tool_states[p.tool_call_id] = ["input-available"]
                else:
                    self._transition(tool_part, "input-available")
                tool_part.input = p.input

            case protocol.ToolOutputAvailablePart() as p:
                tool_part = self._tool(p.tool_call_id)
                self._transition(tool_part, "output-available")
                tool_part.output = p.output

            case protocol.ToolOutputErrorPart() as p:
                tool_part = self._tool(p.tool_call_id)
                self._transition(tool_part, "output-error")
                tool_part.error_text = p.error_text

            case protocol.SourceUrlPart() as p:
                msg.parts.append(
                    ui_message.UISourceUrlPart(
                        source_id=p.source_id, url=p.url, title=p.title
                    )
                )

            case protocol.ErrorPart(error_text=text):
                self.error_text = text

            case protocol.FinishStepPart():
                pass

            case protocol.FinishPart(finish_reason=reason):
                self.finish_reason = reason
                self.finished = True

            case protocol.AbortPart():
                self.aborted = True
                self.finished = True

    # -- client-side tool results ---------------------------------------------

    @property
    def pending_client_calls(self) -> list[ui_message.UIToolPart]:
        """Calls the server left for the client to resolve."""
        if self.message is None:
            return []
        return [
            p
            for p in self.message.tool_parts
            if p.state == "input-available" and not p.provider_executed
        ]

    def add_tool_output(self, tool_call_id: str, output: Any) -> None:
        tool_part = self._tool(tool_call_id)
        self._transition(tool_part, "output-available")
        tool_part.output = output

    def add_tool_error(self, tool_call_id: str, error_text: str) -> None:
        tool_part = self._tool(tool_call_id)
        self._transition(tool_part, "output-error")
        tool_part.error_text = error_text

    # -- helpers ---------------------------------------------------------------

    def _require_message(
        self, part: protocol.UIMessageStreamPart
    ) -> ui_message.UIMessage:
        if self.message is None:
            raise StreamProtocolError(f"Received {part.type!r} before 'start'")
        return self.message

    def _open_text(self, text_id: str) -> ui_message.UITextPart:
        text_part = self._text_parts.get(text_id)
        if text_part is None:
            raise StreamProtocolError(f"Unknown text block {text_id!r}")
        if text_part.state == "done":
            raise StreamProtocolError(f"Text block {text_id!r} already ended")
        return text_part

    def _tool(self, tool_call_id: str) -> ui_message.UIToolPart:
        tool_part = self.message.get_tool_part(tool_call_id) if self.message else None
        if tool_part is None:
            raise StreamProtocolError(f"Unknown tool call {tool_call_id!r}")
        return tool_part

    def _transition(self, tool_part: ui_message.UIToolPart, new_state: str) -> None:
        if not messages_.can_transition(tool_part.state, new_state):
            raise StreamProtocolError(
                f"Tool call {tool_part.tool_call_id!r} cannot move from "
                f"{tool_part.state!r} to {new_state!r}"
            )
        tool_part.state = new_state  # type: ignore[assignment]
        self.tool_states.setdefault(tool_part.tool_call_id, []).append(new_state)

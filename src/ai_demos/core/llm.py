from __future__ import annotations

import abc
import dataclasses
from collections.abc import AsyncGenerator, Sequence
from typing import Any, Protocol, runtime_checkable

from . import messages as messages_
from . import tools as tools_


@dataclasses.dataclass
class TextStart:
    block_id: str


@dataclasses.dataclass
class TextDelta:
    block_id: str
    delta: str


@dataclasses.dataclass
class TextEnd:
    block_id: str


@dataclasses.dataclass
class ToolStart:
    tool_call_id: str
    tool_name: str
    provider_executed: bool | None = None


@dataclasses.dataclass
class ToolArgsDelta:
    tool_call_id: str
    delta: str


@dataclasses.dataclass
class ToolEnd:
    tool_call_id: str


@dataclasses.dataclass
class SourceEvent:
    source_id: str
    url: str
    title: str | None = None


@dataclasses.dataclass
class MessageDone:
    finish_reason: str | None = None


StreamEvent = (
    TextStart
    | TextDelta
    | TextEnd
    | ToolStart
    | ToolArgsDelta
    | ToolEnd
    | SourceEvent
    | MessageDone
)


@dataclasses.dataclass
class StreamHandler:
    """
    Accumulates LLM adapter events and produces Messages with stateful parts.

    This is the normalization layer between LLM adapters and the rest of the
    system. Tool calls stay in ``input-streaming`` until their ToolEnd (or
    MessageDone) arrives, then become ``input-available``.
    """

    message_id: str = dataclasses.field(default_factory=messages_._gen_id)

    # Accumulators
    _text_blocks: dict[str, str] = dataclasses.field(default_factory=dict)
    _tool_calls: dict[str, tuple[str, str, bool | None]] = dataclasses.field(
        default_factory=dict
    )  # (name, args, provider_executed)
    _sources: dict[str, messages_.SourcePart] = dataclasses.field(
        default_factory=dict
    )

    # Active tracking
    _active_text_id: str | None = None
    _active_tool_ids: set[str] = dataclasses.field(default_factory=set)

    finish_reason: str | None = None
    is_done: bool = False

    def handle_event(self, event: StreamEvent) -> messages_.Message:
        """Process event and return current Message state."""

        # Current deltas (reset each call)
        text_delta: str | None = None
        tool_deltas: dict[str, str] = {}  # tool_call_id -> delta

        match event:
            case TextStart(block_id=bid):
                self._text_blocks[bid] = ""
                self._active_text_id = bid

            case TextDelta(block_id=bid, delta=d):
                if bid not in self._text_blocks:
                    self._text_blocks[bid] = ""
                    self._active_text_id = bid
                self._text_blocks[bid] += d
                text_delta = d

            case TextEnd(block_id=bid):
                if self._active_text_id == bid:
                    self._active_text_id = None

            case ToolStart(tool_call_id=tcid, tool_name=name, provider_executed=pe):
                self._tool_calls[tcid] = (name, "", pe)
                self._active_tool_ids.add(tcid)

            case ToolArgsDelta(tool_call_id=tcid, delta=d):
                name, args, pe = self._tool_calls[tcid]
                self._tool_calls[tcid] = (name, args + d, pe)
                tool_deltas[tcid] = d

            case ToolEnd(tool_call_id=tcid):
                self._active_tool_ids.discard(tcid)

            case SourceEvent(source_id=sid, url=url, title=title):
                self._sources[sid] = messages_.SourcePart(
                    source_id=sid, url=url, title=title
                )

            case MessageDone(finish_reason=reason):
                self.is_done = True
                self.finish_reason = reason
                self._active_text_id = None
                self._active_tool_ids.clear()

        return self._build_message(text_delta, tool_deltas)

    def _build_message(
        self,
        text_delta: str | None,
        tool_deltas: dict[str, str],
    ) -> messages_.Message:
        parts: list[messages_.Part] = []

        for bid, text in self._text_blocks.items():
            is_active = bid == self._active_text_id
            parts.append(
                messages_.TextPart(
                    text=text,
                    state="streaming" if is_active else "done",
                    delta=text_delta if is_active else None,
                )
            )

        for tcid, (name, args, pe) in self._tool_calls.items():
            is_active = tcid in self._active_tool_ids
            parts.append(
                messages_.ToolPart(
                    tool_call_id=tcid,
                    tool_name=name,
                    tool_args=args,
                    state="input-streaming" if is_active else "input-available",
                    args_delta=tool_deltas.get(tcid),
                    provider_executed=pe,
                )
            )

        parts.extend(self._sources.values())

        return messages_.Message(
            id=self.message_id,
            role="assistant",
            parts=parts,
        )


class LanguageModel(abc.ABC):
    """A hosted model reached through a provider SDK.

    ``output_schema`` is a JSON Schema the provider should constrain the
    text output to. Adapters raise ``errors.ProviderError`` for every
    upstream failure.
    """

    @abc.abstractmethod
    async def stream(
        self,
        messages: list[messages_.Message],
        tools: Sequence[tools_.ToolLike] | None = None,
        output_schema: dict[str, Any] | None = None,
    ) -> AsyncGenerator[messages_.Message]:
        raise NotImplementedError
        yield

    async def generate_text(
        self,
        messages: list[messages_.Message],
        output_schema: dict[str, Any] | None = None,
    ) -> str:
        """Run the stream to completion and return the final text."""
        last: messages_.Message | None = None
        async for msg in self.stream(messages, output_schema=output_schema):
            last = msg
        return last.text if last is not None else ""


@runtime_checkable
class SpeechModel(Protocol):
    """Audio capabilities some providers offer next to text generation."""

    async def transcribe(self, audio: bytes, media_type: str, prompt: str) -> str: ...

    async def speak(self, text: str, voice: str | None = None) -> bytes: ...


@runtime_checkable
class ImageModel(Protocol):
    async def generate_image(self, prompt: str) -> str:
        """Return the generated image as base64."""
        ...

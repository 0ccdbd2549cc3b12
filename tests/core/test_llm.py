"""StreamHandler: event accumulation, state transitions, message building."""

import pytest

from ai_demos.core.llm import (
    MessageDone,
    SourceEvent,
    StreamHandler,
    TextDelta,
    TextEnd,
    TextStart,
    ToolArgsDelta,
    ToolEnd,
    ToolStart,
)
from ai_demos.core.messages import SourcePart, TextPart, ToolPart

from ..conftest import MockLLM, text_deltas

# -- Text streaming --------------------------------------------------------


def test_text_lifecycle() -> None:
    h = StreamHandler(message_id="m1")
    m = h.handle_event(TextStart(block_id="b1"))
    assert len(m.parts) == 1
    part = m.parts[0]
    assert isinstance(part, TextPart)
    assert part.state == "streaming"
    assert part.text == ""

    m = h.handle_event(TextDelta(block_id="b1", delta="Hello"))
    part = m.parts[0]
    assert isinstance(part, TextPart)
    assert part.text == "Hello"
    assert part.delta == "Hello"

    m = h.handle_event(TextDelta(block_id="b1", delta=" world"))
    part = m.parts[0]
    assert isinstance(part, TextPart)
    assert part.text == "Hello world"
    assert part.delta == " world"

    m = h.handle_event(TextEnd(block_id="b1"))
    part = m.parts[0]
    assert isinstance(part, TextPart)
    assert part.state == "done"
    assert part.delta is None


def test_delta_without_start_opens_block() -> None:
    h = StreamHandler(message_id="m1")
    m = h.handle_event(TextDelta(block_id="b1", delta="Hi"))
    assert m.text == "Hi"
    assert m.parts[0].state == "streaming"  # type: ignore[union-attr]


# -- Tool calls --------------------------------------------------------------


def test_tool_lifecycle() -> None:
    h = StreamHandler(message_id="m1")
    m = h.handle_event(ToolStart(tool_call_id="tc1", tool_name="get_weather"))
    part = m.parts[0]
    assert isinstance(part, ToolPart)
    assert part.state == "input-streaming"
    assert part.tool_args == ""

    m = h.handle_event(ToolArgsDelta(tool_call_id="tc1", delta='{"city":'))
    m = h.handle_event(ToolArgsDelta(tool_call_id="tc1", delta=' "Karachi"}'))
    part = m.parts[0]
    assert isinstance(part, ToolPart)
    assert part.tool_args == '{"city": "Karachi"}'
    assert part.args_delta == ' "Karachi"}'
    assert part.state == "input-streaming"

    m = h.handle_event(ToolEnd(tool_call_id="tc1"))
    part = m.parts[0]
    assert isinstance(part, ToolPart)
    assert part.state == "input-available"
    assert part.args_delta is None


def test_multiple_tool_calls() -> None:
    h = StreamHandler(message_id="m1")
    h.handle_event(ToolStart(tool_call_id="tc1", tool_name="a"))
    h.handle_event(ToolStart(tool_call_id="tc2", tool_name="b"))
    h.handle_event(ToolArgsDelta(tool_call_id="tc1", delta="{}"))
    m = h.handle_event(ToolEnd(tool_call_id="tc1"))

    assert [tc.state for tc in m.tool_calls] == ["input-available", "input-streaming"]


def test_provider_executed_flag_kept() -> None:
    h = StreamHandler(message_id="m1")
    m = h.handle_event(
        ToolStart(tool_call_id="tc1", tool_name="web_search", provider_executed=True)
    )
    assert m.tool_calls[0].provider_executed is True


# -- Sources and completion --------------------------------------------------


def test_sources_are_deduplicated() -> None:
    h = StreamHandler(message_id="m1")
    h.handle_event(SourceEvent(source_id="s1", url="https://a.example"))
    m = h.handle_event(SourceEvent(source_id="s1", url="https://a.example"))
    assert m.sources == [SourcePart(source_id="s1", url="https://a.example")]


def test_message_done_finalizes_all() -> None:
    h = StreamHandler(message_id="m1")
    h.handle_event(TextStart(block_id="b1"))
    h.handle_event(TextDelta(block_id="b1", delta="partial"))
    h.handle_event(ToolStart(tool_call_id="tc1", tool_name="t"))
    m = h.handle_event(MessageDone(finish_reason="tool_calls"))

    assert h.is_done
    assert h.finish_reason == "tool_calls"
    assert m.is_done
    assert m.tool_calls[0].state == "input-available"


def test_message_id_propagates() -> None:
    h = StreamHandler(message_id="custom-id")
    m = h.handle_event(TextStart(block_id="b1"))
    assert m.id == "custom-id"
    assert m.role == "assistant"


# -- generate_text -----------------------------------------------------------


@pytest.mark.asyncio
async def test_generate_text_returns_final_text() -> None:
    llm = MockLLM([text_deltas(["Hello", " there"])])
    assert await llm.generate_text([]) == "Hello there"


@pytest.mark.asyncio
async def test_generate_text_passes_output_schema() -> None:
    llm = MockLLM([text_deltas(["{}"])])
    await llm.generate_text([], output_schema={"type": "object"})
    assert llm.calls[0]["output_schema"] == {"type": "object"}


@pytest.mark.asyncio
async def test_generate_text_empty_stream() -> None:
    llm = MockLLM([[]])
    assert await llm.generate_text([]) == ""

from __future__ import annotations

from collections.abc import AsyncGenerator, Sequence
from typing import Any

import ai_demos as ai
from ai_demos.core import messages
from ai_demos.core.tools import ToolLike


class MockLLM(ai.LanguageModel):
    """LLM that yields pre-configured response sequences, one per call.

    A response may be an exception instead of a message list; it is raised
    when that call starts streaming.
    """

    def __init__(self, responses: list[list[messages.Message] | Exception]) -> None:
        self._responses = list(responses)
        self._call_index = 0
        self.call_count = 0
        self.calls: list[dict[str, Any]] = []

    async def stream(
        self,
        messages: list[messages.Message],
        tools: Sequence[ToolLike] | None = None,
        output_schema: dict[str, Any] | None = None,
    ) -> AsyncGenerator[messages.Message]:
        if self._call_index >= len(self._responses):
            raise RuntimeError("MockLLM: no more responses configured")
        self.call_count += 1
        self.calls.append(
            {
                "messages": [m.model_copy(deep=True) for m in messages],
                "tools": [t.name for t in tools or []],
                "output_schema": output_schema,
            }
        )
        seq = self._responses[self._call_index]
        self._call_index += 1
        if isinstance(seq, Exception):
            raise seq
        for msg in seq:
            yield msg.model_copy(deep=True)


def text_msg(
    text: str, *, id: str = "msg-1", state: str = "done", delta: str | None = None
) -> messages.Message:
    return messages.Message(
        id=id,
        role="assistant",
        parts=[messages.TextPart(text=text, state=state, delta=delta)],
    )


def text_deltas(chunks: list[str], *, id: str = "msg-1") -> list[messages.Message]:
    """Snapshots of a text reply streamed in ``chunks``."""
    snapshots = []
    text = ""
    for chunk in chunks:
        text += chunk
        snapshots.append(text_msg(text, id=id, state="streaming", delta=chunk))
    snapshots.append(text_msg(text, id=id))
    return snapshots


def tool_msg(
    *,
    id: str = "msg-1",
    tc_id: str = "tc-1",
    name: str = "test_tool",
    args: str = "{}",
    state: str = "input-available",
    result: Any = None,
) -> messages.Message:
    return messages.Message(
        id=id,
        role="assistant",
        parts=[
            messages.ToolPart(
                tool_call_id=tc_id,
                tool_name=name,
                tool_args=args,
                state=state,
                result=result,
            )
        ],
    )


async def aiter_list(items: Sequence[Any]) -> AsyncGenerator[Any]:
    for item in items:
        yield item

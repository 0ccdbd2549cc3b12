from __future__ import annotations

import dataclasses
from collections.abc import AsyncIterable
from . import messages as messages_


@dataclasses.dataclass
class StreamResult:
    messages: list[messages_.Message] = dataclasses.field(default_factory=list)

    @property
    def last_message(self) -> messages_.Message | None:
        return self.messages[-1] if self.messages else None

    @property
    def tool_calls(self) -> list[messages_.ToolPart]:
        """Get tool calls from the last message."""
        if self.last_message:
            return self.last_message.tool_calls
        return []

    @property
    def text(self) -> str:
        if self.last_message:
            return self.last_message.text
        return ""

    @property
    def steps(self) -> list[messages_.Message]:
        """Final snapshot of each distinct message, in order."""
        by_id: dict[str, messages_.Message] = {}
        for msg in self.messages:
            by_id[msg.id] = msg
        return list(by_id.values())


async def collect(
    messages: AsyncIterable[messages_.Message],
) -> StreamResult:
    """Drain a message stream into a StreamResult."""
    result = StreamResult()
    async for msg in messages:
        result.messages.append(msg)
    return result

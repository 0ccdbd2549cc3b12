"""A headless ``useChat``: posts UI messages and reduces the streamed reply.

Client-side tools are resolved locally and the conversation is resubmitted,
the same round trip a browser makes when the last assistant message ends in
tool calls that only it can answer.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncGenerator, AsyncIterable, Awaitable, Callable, Mapping
from typing import Any

import httpx

from . import protocol, reducer, ui_message

logger = logging.getLogger(__name__)

ClientToolHandler = Callable[[dict[str, Any]], Awaitable[Any]]


class ChatRequestError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


async def iter_stream_parts(
    lines: AsyncIterable[str],
) -> AsyncGenerator[protocol.UIMessageStreamPart]:
    """Parse SSE ``data:`` lines until the ``[DONE]`` sentinel."""
    async for line in lines:
        if not line.startswith("data:"):
            continue
        payload = line[len("data:") :].strip()
        if payload == protocol.DONE_SENTINEL:
            return
        yield protocol.parse_part(json.loads(payload))


def _error_message(body: bytes) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        return body.decode(errors="replace")
    if isinstance(data, dict) and isinstance(data.get("error"), str):
        return data["error"]
    return str(data)


class ChatClient:
    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient,
        client_tools: Mapping[str, ClientToolHandler] | None = None,
        max_round_trips: int = 5,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = http_client
        self._client_tools = dict(client_tools or {})
        self._max_round_trips = max_round_trips
        self.last_reducer: reducer.UIMessageReducer | None = None

    async def send(
        self, path: str, messages: list[ui_message.UIMessage]
    ) -> list[ui_message.UIMessage]:
        """Send the conversation and return it extended with the reply.

        Raises:
            ChatRequestError: the endpoint answered with an error status.
            reducer.StreamProtocolError: the reply broke the stream protocol.
        """
        history = list(messages)

        for _ in range(self._max_round_trips):
            continuing = bool(history) and history[-1].role == "assistant"
            state = reducer.UIMessageReducer(
                history[-1].model_copy(deep=True) if continuing else None
            )
            self.last_reducer = state
            await self._stream_reply(path, history, state)

            if state.message is not None:
                if continuing:
                    history[-1] = state.message
                else:
                    history.append(state.message)

            if state.error_text is not None or state.aborted:
                break
            pending = state.pending_client_calls
            if not pending or not await self._resolve(state, pending):
                break

        return history

    async def _stream_reply(
        self,
        path: str,
        history: list[ui_message.UIMessage],
        state: reducer.UIMessageReducer,
    ) -> None:
        body = {"messages": [m.to_wire() for m in history]}
        async with self._http.stream(
            "POST", f"{self.base_url}{path}", json=body
        ) as response:
            if response.status_code >= 400:
                raise ChatRequestError(
                    response.status_code, _error_message(await response.aread())
                )
            async for part in iter_stream_parts(response.aiter_lines()):
                state.apply(part)

    async def _resolve(
        self,
        state: reducer.UIMessageReducer,
        pending: list[ui_message.UIToolPart],
    ) -> bool:
        """Answer every pending call locally. False if one has no handler."""
        for tool_part in pending:
            handler = self._client_tools.get(tool_part.tool_name)
            if handler is None:
                logger.debug("No client handler for %s", tool_part.tool_name)
                return False
            args = tool_part.input if isinstance(tool_part.input, dict) else {}
            try:
                output = await handler(args)
            except Exception as exc:
                logger.warning("Client tool %s failed: %s", tool_part.tool_name, exc)
                state.add_tool_error(tool_part.tool_call_id, str(exc))
                continue
            state.add_tool_output(tool_part.tool_call_id, output)
        return True

from __future__ import annotations

import dataclasses
import logging
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable
from typing import Literal, TypeVar

import fastapi
import fastapi.responses
import pydantic

from .. import ai_sdk_ui
from ..core import errors as errors_
from ..core import llm as llm_
from ..core import messages as messages_
from ..core import runtime
from ..core import tools as tools_
from ..mcp.client import MCPToolClient
from .models import ModelFactory
from .settings import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChatRequest(pydantic.BaseModel):
    """Request body for the chat endpoints."""

    messages: list[ai_sdk_ui.UIMessage]


@dataclasses.dataclass(frozen=True)
class EndpointConfig:
    """Everything that distinguishes one chat endpoint from another."""

    name: str
    model: Literal["chat", "fast"] = "chat"
    system: str | None = None
    tools: tools_.ToolRegistry = dataclasses.field(default_factory=tools_.ToolRegistry)
    max_steps: int = 1
    remote_tools: bool = False
    web_search: bool = False

    def __post_init__(self) -> None:
        if self.max_steps < 1:
            raise ValueError(f"{self.name}: max_steps must be at least 1")


def model_name(settings: Settings, which: Literal["chat", "fast"]) -> str:
    return settings.fast_model if which == "fast" else settings.chat_model


def convert_messages(
    ui_messages: list[ai_sdk_ui.UIMessage], system: str | None = None
) -> list[messages_.Message]:
    """Request messages in internal form, with the endpoint's system prompt first."""
    try:
        messages = ai_sdk_ui.to_messages(ui_messages)
    except ValueError as exc:
        raise errors_.ProviderError(
            errors_.ErrorKind.INVALID_REQUEST, str(exc)
        ) from exc
    if system is not None:
        system_message = messages_.Message(
            role="system", parts=[messages_.TextPart(text=system)]
        )
        messages.insert(0, system_message)
    return messages


async def primed(stream: AsyncGenerator[T]) -> AsyncGenerator[T]:
    """Pull the first item now so that failures before any output raise here.

    The request handler can then still answer with a plain JSON error and the
    status of the error kind instead of an in-stream error event.
    """
    try:
        first = await anext(stream)
    except StopAsyncIteration:
        first = None
        exhausted = True
    else:
        exhausted = False

    async def replay() -> AsyncGenerator[T]:
        if exhausted:
            return
        yield first  # type: ignore[misc]
        async for item in stream:
            yield item

    return replay()


async def _run_with_remote_tools(
    llm: llm_.LanguageModel,
    messages: list[messages_.Message],
    config: EndpointConfig,
    client: MCPToolClient,
) -> AsyncGenerator[messages_.Message]:
    # Opened and closed inside the streaming task.
    try:
        tools = config.tools
        remote: list[tools_.Tool] = []
        for t in await client.list_tools():
            if t.name in tools:
                logger.warning(
                    "%s: remote tool %r shadowed by local tool", config.name, t.name
                )
                continue
            remote.append(t)
        logger.debug(
            "%s: %d remote tool(s) from %s", config.name, len(remote), client.url
        )
        tools = tools.merge(remote)
        async for msg in runtime.stream_loop(llm, messages, tools, config.max_steps):
            yield msg
    finally:
        await client.aclose()


def chat_endpoint(
    config: EndpointConfig, settings: Settings, models: ModelFactory
) -> Callable[[ChatRequest], Awaitable[fastapi.responses.StreamingResponse]]:
    """Build the route function for one chat endpoint."""

    async def endpoint(request: ChatRequest) -> fastapi.responses.StreamingResponse:
        messages = convert_messages(request.messages, config.system)
        llm = models.language_model(
            model_name(settings, config.model), web_search=config.web_search
        )

        stream: AsyncIterator[messages_.Message]
        if config.remote_tools:
            client = MCPToolClient(
                settings.require("mcp_server_url"),
                auth_token=settings.mcp_auth_token,
                timeout=settings.http_timeout,
            )
            stream = _run_with_remote_tools(llm, messages, config, client)
        else:
            stream = await primed(
                runtime.stream_loop(llm, messages, config.tools, config.max_steps)
            )

        return fastapi.responses.StreamingResponse(
            ai_sdk_ui.to_sse_stream(stream),
            headers=ai_sdk_ui.UI_MESSAGE_STREAM_HEADERS,
        )

    endpoint.__name__ = config.name.replace("-", "_")
    return endpoint

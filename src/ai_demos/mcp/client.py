from __future__ import annotations

import asyncio
import contextlib
import datetime
import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import anyio
import httpx
import mcp.client.session
import mcp.client.streamable_http
import mcp.types

from ..core import tools as tools_
from ..services import http as http_

__all__ = ["MCPToolClient", "MCPToolError"]

logger = logging.getLogger(__name__)

# Failures of an idempotent request that are worth one more try.
_RETRYABLE_ERRORS: tuple[type[Exception], ...] = (
    asyncio.TimeoutError,
    httpx.TimeoutException,
    httpx.ConnectError,
)

SessionFactory = Callable[
    [contextlib.AsyncExitStack], Awaitable[mcp.client.session.ClientSession]
]


class MCPToolError(RuntimeError):
    """A remote tool call failed or reported an error."""


def _result_value(result: mcp.types.CallToolResult) -> Any:
    # Prefer structured content if available
    if result.structuredContent is not None:
        return result.structuredContent

    for part in result.content:
        if isinstance(part, mcp.types.TextContent):
            text = part.text
            # Try to parse JSON, otherwise return raw text
            if text.startswith(("{", "[")):
                try:
                    return json.loads(text)
                except json.JSONDecodeError:
                    pass
            return text

    return [part.model_dump(mode="json") for part in result.content]


class MCPToolClient:
    """A request-scoped session with a remote MCP server (Streamable HTTP).

    The session is opened on first use and must be released with
    ``aclose()``, in the same task that opened it. ``aclose()`` is safe to
    call any number of times; the session is closed once.
    """

    def __init__(
        self,
        url: str,
        *,
        auth_token: str | None = None,
        timeout: float = 30.0,
        max_attempts: int = http_.DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = http_.DEFAULT_RETRY_DELAY,
        session_factory: SessionFactory | None = None,
    ) -> None:
        self.url = url
        self._headers = (
            {"Authorization": f"Bearer {auth_token}"} if auth_token else None
        )
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._session_factory = session_factory or self._open_session
        self._session: mcp.client.session.ClientSession | None = None
        self._exit_stack: contextlib.AsyncExitStack | None = None
        self.closed = False

    async def _open_session(
        self, exit_stack: contextlib.AsyncExitStack
    ) -> mcp.client.session.ClientSession:
        streams = await exit_stack.enter_async_context(
            mcp.client.streamable_http.streamablehttp_client(
                url=self.url,
                headers=self._headers,
                timeout=datetime.timedelta(seconds=self._timeout),
            )
        )
        read_stream, write_stream = streams[0], streams[1]
        session = mcp.client.session.ClientSession(
            read_stream=read_stream, write_stream=write_stream
        )
        await exit_stack.enter_async_context(session)
        await session.initialize()
        return session

    async def connect(self) -> mcp.client.session.ClientSession:
        if self.closed:
            raise RuntimeError(f"MCP client for {self.url} is closed")
        if self._session is None:
            exit_stack = contextlib.AsyncExitStack()
            try:
                self._session = await self._session_factory(exit_stack)
            except BaseException:
                # Clean up on any error during setup
                await exit_stack.aclose()
                raise
            self._exit_stack = exit_stack
            logger.debug("Opened MCP session with %s", self.url)
        return self._session

    async def list_tools(self) -> list[tools_.Tool]:
        """The server's tools, callable through this session.

        Listing has no side effects, so timeouts and connection failures are
        retried with the same backoff as other outgoing HTTP calls.
        """
        session = await self.connect()
        for attempt in range(self._max_attempts):
            try:
                result = await asyncio.wait_for(
                    session.list_tools(), timeout=self._timeout
                )
            except _RETRYABLE_ERRORS as exc:
                if attempt == self._max_attempts - 1:
                    raise
                logger.warning(
                    "Listing tools from %s failed (%s), retrying",
                    self.url,
                    type(exc).__name__,
                )
                await asyncio.sleep(self._retry_delay * (2**attempt))
            else:
                break
        return [self._to_tool(mcp_tool) for mcp_tool in result.tools]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        session = await self.connect()
        try:
            result = await asyncio.wait_for(
                session.call_tool(name, arguments), timeout=self._timeout
            )
        except asyncio.TimeoutError:
            raise MCPToolError(
                f"MCP tool call timed out after {self._timeout:g} seconds: {name}"
            ) from None

        if result.isError:
            error_text = " ".join(
                part.text
                for part in result.content
                if isinstance(part, mcp.types.TextContent)
            )
            raise MCPToolError(f"MCP tool error: {error_text or 'Unknown error'}")

        return _result_value(result)

    def _to_tool(self, mcp_tool: mcp.types.Tool) -> tools_.Tool:
        name = mcp_tool.name

        async def call(**kwargs: Any) -> Any:
            return await self.call_tool(name, kwargs)

        return tools_.Tool(
            schema=tools_.ToolSchema(
                name=name,
                description=mcp_tool.description or "",
                param_schema=mcp_tool.inputSchema,
            ),
            fn=call,
        )

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        exit_stack, self._exit_stack, self._session = self._exit_stack, None, None
        if exit_stack is None:
            return
        try:
            # Runs on client disconnect too; the teardown must not be cut short.
            with anyio.CancelScope(shield=True):
                await exit_stack.aclose()
        except Exception:
            logger.exception("Failed to close MCP session with %s", self.url)
        else:
            logger.debug("Closed MCP session with %s", self.url)

    async def __aenter__(self) -> MCPToolClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

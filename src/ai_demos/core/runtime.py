from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator

import pydantic

from . import llm as llm_
from . import messages as messages_
from . import tools as tools_

logger = logging.getLogger(__name__)


def _error_text(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


async def execute_tool(
    tool_call: messages_.ToolPart,
    tools: tools_.ToolRegistry,
) -> None:
    """
    Execute a single tool call and record the outcome on the ToolPart.

    Client-side tools are left in ``input-available`` for the browser to
    resolve. Every handler failure becomes an ``output-error`` on this call
    only; nothing raised by a handler reaches the caller.
    """
    tool = tools.get(tool_call.tool_name)
    if tool is None:
        tool_call.set_error(f"Tool not found: {tool_call.tool_name}")
        return

    if tool.is_client_side:
        return

    try:
        result = await tool.validate_and_call(tool_call.tool_args)
    except (json.JSONDecodeError, pydantic.ValidationError, ValueError) as exc:
        # LLM produced malformed JSON or args that don't match the schema.
        # Report back as a tool error so the model can retry.
        tool_call.set_error(f"{type(exc).__name__}: {exc}")
        return
    except Exception as exc:
        logger.exception("Tool %s failed", tool_call.tool_name)
        tool_call.set_error(_error_text(exc))
        return

    tool_call.set_result(result)


def _needs_server(tool_call: messages_.ToolPart, tools: tools_.ToolRegistry) -> bool:
    tool = tools.get(tool_call.tool_name)
    return tool is None or not tool.is_client_side


async def stream_loop(
    llm: llm_.LanguageModel,
    messages: list[messages_.Message],
    tools: tools_.ToolRegistry,
    max_steps: int,
) -> AsyncGenerator[messages_.Message]:
    """Agent loop: stream LLM, execute tools, repeat until done.

    Yields a copy of every message snapshot. Stops when the model makes no
    tool calls, when a client-side call is waiting for the browser, or after
    ``max_steps`` model calls, whichever comes first.
    """
    if max_steps < 1:
        raise ValueError(f"max_steps must be at least 1, got {max_steps}")

    local_messages = list(messages)
    definitions = tools.definitions() or None

    for step in range(max_steps):
        last_msg: messages_.Message | None = None
        async for msg in llm.stream(messages=local_messages, tools=definitions):
            last_msg = msg
            yield msg.model_copy(deep=True)

        if last_msg is None:
            return
        local_messages.append(last_msg)

        pending = [
            tc for tc in last_msg.unresolved_tool_calls if not tc.provider_executed
        ]
        if not pending:
            return

        server_calls = [tc for tc in pending if _needs_server(tc, tools)]
        if server_calls:
            tasks = [
                asyncio.create_task(execute_tool(tc, tools)) for tc in server_calls
            ]
            try:
                for finished in asyncio.as_completed(tasks):
                    await finished
                    # Emit updated message so UI sees status change
                    yield last_msg.model_copy(deep=True)
            finally:
                for task in tasks:
                    task.cancel()

        if len(server_calls) < len(pending):
            logger.debug(
                "Step %d paused on %d client-side tool call(s)",
                step + 1,
                len(pending) - len(server_calls),
            )
            return

    logger.debug("Step cap of %d reached", max_steps)

from __future__ import annotations

import json
from collections.abc import AsyncGenerator, Sequence
from typing import Any

from typing_extensions import override

import anthropic
import httpx

from ..core import errors as errors_
from ..core import llm as llm_
from ..core import messages as messages_
from ..core import tools as tools_

_JSON_INSTRUCTION = (
    "Respond only with a JSON document that conforms to this JSON Schema, "
    "without any surrounding prose or code fences:\n{schema}"
)


def _tools_to_anthropic(tools: Sequence[tools_.ToolLike]) -> list[dict[str, Any]]:
    """Convert internal Tool objects to Anthropic tool schema format."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "input_schema": tool.param_schema,
        }
        for tool in tools
    ]


def _file_to_anthropic(part: messages_.FilePart) -> dict[str, Any]:
    block_type = "image" if part.media_type.startswith("image/") else "document"
    data = part.inline_data
    if data is not None:
        source = {"type": "base64", "media_type": part.media_type, "data": data}
    else:
        source = {"type": "url", "url": part.url}
    return {"type": block_type, "source": source}


def _tool_input(tool_args: str) -> dict[str, Any]:
    """Anthropic needs an object; malformed arguments are sent as empty."""
    try:
        value = json.loads(tool_args) if tool_args else {}
    except json.JSONDecodeError:
        return {}
    return value if isinstance(value, dict) else {}


def _tool_result(part: messages_.ToolPart) -> dict[str, Any]:
    entry: dict[str, Any] = {"type": "tool_result", "tool_use_id": part.tool_call_id}
    if part.state == "output-error":
        entry["content"] = part.error_text or "Tool execution failed"
        entry["is_error"] = True
    elif isinstance(part.result, str):
        entry["content"] = part.result
    else:
        entry["content"] = json.dumps(part.result, default=str)
    return entry


def _messages_to_anthropic(
    messages: list[messages_.Message],
) -> tuple[str | None, list[dict[str, Any]]]:
    """Convert internal messages to Anthropic API format.

    Returns (system_prompt, messages) tuple since Anthropic handles system differently.

    Tool outcomes stored on assistant ToolParts become ``tool_result`` blocks
    in a user message that follows the assistant message.
    """
    system_prompt: str | None = None
    result: list[dict[str, Any]] = []

    for msg in messages:
        if msg.role == "system":
            system_prompt = msg.text
        elif msg.role == "assistant":
            content: list[dict[str, Any]] = []
            answered = [
                p for p in msg.tool_calls if p.is_terminal and not p.provider_executed
            ]
            if msg.text:
                content.append({"type": "text", "text": msg.text})
            for part in answered:
                content.append(
                    {
                        "type": "tool_use",
                        "id": part.tool_call_id,
                        "name": part.tool_name,
                        "input": _tool_input(part.tool_args),
                    }
                )
            if content:
                result.append({"role": "assistant", "content": content})
            if answered:
                result.append(
                    {"role": "user", "content": [_tool_result(p) for p in answered]}
                )
        else:
            blocks: list[dict[str, Any]] = []
            for part in msg.parts:
                if isinstance(part, messages_.TextPart):
                    blocks.append({"type": "text", "text": part.text})
                elif isinstance(part, messages_.FilePart):
                    blocks.append(_file_to_anthropic(part))
            result.append({"role": "user", "content": blocks})

    return system_prompt, result


class AnthropicModel(llm_.LanguageModel):
    """Anthropic Messages API adapter.

    Anthropic has no JSON-schema response format on this path, so structured
    output is requested through the system prompt and validated by the caller.
    """

    def __init__(
        self,
        model: str = "claude-sonnet-4-5-20250929",
        api_key: str | None = None,
        client: anthropic.AsyncAnthropic | None = None,
        max_tokens: int = 8192,
        timeout: float | None = None,
    ) -> None:
        self._model = model
        self._max_tokens = max_tokens
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key or "",
            timeout=timeout if timeout is not None else anthropic.DEFAULT_TIMEOUT,
        )

    async def stream_events(
        self,
        messages: list[messages_.Message],
        tools: Sequence[tools_.ToolLike] | None = None,
        output_schema: dict[str, Any] | None = None,
    ) -> AsyncGenerator[llm_.StreamEvent]:
        """Yield raw stream events from Anthropic API."""
        system_prompt, anthropic_messages = _messages_to_anthropic(messages)

        if output_schema is not None:
            instruction = _JSON_INSTRUCTION.format(schema=json.dumps(output_schema))
            system_prompt = (
                f"{system_prompt}\n\n{instruction}" if system_prompt else instruction
            )

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": anthropic_messages,
            "max_tokens": self._max_tokens,
        }
        if system_prompt:
            kwargs["system"] = system_prompt
        if tools:
            kwargs["tools"] = _tools_to_anthropic(tools)

        # Track block types by index to know what End event to emit
        block_types: dict[int, str] = {}  # index -> "text" | "tool_use"
        tool_ids: dict[int, str] = {}  # index -> tool_call_id
        stop_reason: str | None = None

        async with self._client.messages.stream(**kwargs) as stream:
            async for event in stream:
                if event.type == "content_block_start":
                    block = event.content_block
                    idx = event.index
                    block_types[idx] = block.type

                    if block.type == "text":
                        yield llm_.TextStart(block_id=str(idx))
                    elif block.type == "tool_use":
                        tool_ids[idx] = block.id
                        yield llm_.ToolStart(
                            tool_call_id=block.id, tool_name=block.name
                        )

                elif event.type == "content_block_delta":
                    delta = event.delta
                    idx = event.index

                    if delta.type == "text_delta":
                        yield llm_.TextDelta(block_id=str(idx), delta=delta.text)
                    elif delta.type == "input_json_delta":
                        tool_id = tool_ids.get(idx)
                        if tool_id:
                            yield llm_.ToolArgsDelta(
                                tool_call_id=tool_id, delta=delta.partial_json
                            )

                elif event.type == "content_block_stop":
                    idx = event.index
                    block_type = block_types.get(idx)

                    if block_type == "text":
                        yield llm_.TextEnd(block_id=str(idx))
                    elif block_type == "tool_use":
                        tool_id = tool_ids.get(idx)
                        if tool_id:
                            yield llm_.ToolEnd(tool_call_id=tool_id)

                elif event.type == "message_delta":
                    stop_reason = event.delta.stop_reason

        yield llm_.MessageDone(finish_reason=stop_reason)

    @override
    async def stream(
        self,
        messages: list[messages_.Message],
        tools: Sequence[tools_.ToolLike] | None = None,
        output_schema: dict[str, Any] | None = None,
    ) -> AsyncGenerator[messages_.Message]:
        """Stream Messages (uses StreamHandler internally)."""
        handler = llm_.StreamHandler()
        try:
            async for event in self.stream_events(messages, tools, output_schema):
                yield handler.handle_event(event)
        except (anthropic.AnthropicError, httpx.HTTPError) as exc:
            raise errors_.to_provider_error(exc) from exc

from __future__ import annotations

import base64
import json
from collections.abc import AsyncGenerator, Sequence
from typing import Any

from typing_extensions import override

import httpx
import openai

from ..core import errors as errors_
from ..core import llm as llm_
from ..core import messages as messages_
from ..core import tools as tools_

# Gemini serves an OpenAI-compatible API; any other compatible base URL works.
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_MODEL = "gemini-2.5-flash"

_TEXT_BLOCK = "text-0"

_AUDIO_FORMATS = {
    "mpeg": "mp3",
    "mp3": "mp3",
    "wav": "wav",
    "x-wav": "wav",
    "wave": "wav",
}


def _tools_to_openai(tools: Sequence[tools_.ToolLike]) -> list[dict[str, Any]]:
    """Convert internal Tool objects to OpenAI tool schema format."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": tool.param_schema,
            },
        }
        for tool in tools
    ]


def _audio_format(media_type: str) -> str:
    subtype = media_type.split("/", 1)[-1].split(";", 1)[0].strip().lower()
    return _AUDIO_FORMATS.get(subtype, subtype)


def _data_url(part: messages_.FilePart) -> str:
    if part.url is not None:
        return part.url
    return f"data:{part.media_type};base64,{part.data}"


def _file_to_openai(part: messages_.FilePart) -> dict[str, Any]:
    if part.media_type.startswith("image/"):
        return {"type": "image_url", "image_url": {"url": _data_url(part)}}
    if part.media_type.startswith("audio/") and part.inline_data is not None:
        return {
            "type": "input_audio",
            "input_audio": {
                "data": part.inline_data,
                "format": _audio_format(part.media_type),
            },
        }
    return {
        "type": "file",
        "file": {
            "filename": part.filename or "attachment",
            "file_data": _data_url(part),
        },
    }


def _tool_output(part: messages_.ToolPart) -> str:
    if part.state == "output-error":
        return f"Error: {part.error_text or 'Tool execution failed'}"
    if isinstance(part.result, str):
        return part.result
    return json.dumps(part.result, default=str)


def _messages_to_openai(messages: list[messages_.Message]) -> list[dict[str, Any]]:
    """Convert internal messages to OpenAI API format.

    Tool calls and their outcomes live on the same assistant ToolPart; OpenAI
    wants the calls on the assistant message and each outcome as a separate
    ``tool`` message right after it. Provider-executed calls (web search)
    and calls nobody answered are left out.
    """
    result: list[dict[str, Any]] = []
    for msg in messages:
        if msg.role == "assistant":
            answered = [
                p for p in msg.tool_calls if p.is_terminal and not p.provider_executed
            ]
            entry: dict[str, Any] = {"role": "assistant"}
            if msg.text:
                entry["content"] = msg.text
            if answered:
                entry["tool_calls"] = [
                    {
                        "id": p.tool_call_id,
                        "type": "function",
                        "function": {
                            "name": p.tool_name,
                            "arguments": p.tool_args or "{}",
                        },
                    }
                    for p in answered
                ]
            if len(entry) > 1:
                result.append(entry)
            result.extend(
                {
                    "role": "tool",
                    "tool_call_id": p.tool_call_id,
                    "content": _tool_output(p),
                }
                for p in answered
            )
        elif msg.role == "user" and msg.files:
            content: list[dict[str, Any]] = []
            for part in msg.parts:
                if isinstance(part, messages_.TextPart):
                    content.append({"type": "text", "text": part.text})
                elif isinstance(part, messages_.FilePart):
                    content.append(_file_to_openai(part))
            result.append({"role": "user", "content": content})
        else:
            result.append({"role": msg.role, "content": msg.text})
    return result


def _citations(delta: Any) -> list[dict[str, Any]]:
    """url_citation annotations attached to a streamed delta, if any."""
    annotations = getattr(delta, "annotations", None)
    if annotations is None and delta.model_extra:
        annotations = delta.model_extra.get("annotations")
    found: list[dict[str, Any]] = []
    for annotation in annotations or []:
        if not isinstance(annotation, dict):
            annotation = annotation.model_dump()
        if annotation.get("type") == "url_citation":
            found.append(annotation.get("url_citation") or {})
    return found


class OpenAIModel(llm_.LanguageModel):
    """Chat-completions adapter for OpenAI and OpenAI-compatible endpoints.

    Also covers the audio and image APIs the demo endpoints use, so a single
    configured client serves TTS, transcription and image generation.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        base_url: str | None = DEFAULT_BASE_URL,
        api_key: str | None = None,
        client: openai.AsyncOpenAI | None = None,
        web_search: bool = False,
        speech_model: str = "gemini-2.5-flash-preview-tts",
        voice: str = "Kore",
        image_model: str = "imagen-3.0-generate-002",
        timeout: float | None = None,
    ) -> None:
        """Initialize the adapter.

        Args:
            model: Chat model identifier.
            base_url: API base URL; defaults to Gemini's OpenAI-compatible API.
            api_key: API key, ignored when ``client`` is given.
            client: Preconfigured SDK client (tests inject one).
            web_search: Let the provider search the web and cite sources.
            speech_model: Model used by ``speak``.
            voice: Default voice for ``speak``.
            image_model: Model used by ``generate_image``.
        """
        self._model = model
        self._web_search = web_search
        self._speech_model = speech_model
        self._voice = voice
        self._image_model = image_model
        self._client = client or openai.AsyncOpenAI(
            base_url=base_url,
            api_key=api_key or "",
            timeout=timeout if timeout is not None else openai.DEFAULT_TIMEOUT,
        )

    async def stream_events(
        self,
        messages: list[messages_.Message],
        tools: Sequence[tools_.ToolLike] | None = None,
        output_schema: dict[str, Any] | None = None,
    ) -> AsyncGenerator[llm_.StreamEvent]:
        """Yield normalized stream events from the chat completions API."""
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": _messages_to_openai(messages),
            "stream": True,
        }
        if tools:
            kwargs["tools"] = _tools_to_openai(tools)
        if output_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": output_schema.get("title", "output"),
                    "schema": output_schema,
                },
            }
        if self._web_search:
            kwargs["web_search_options"] = {}

        text_open = False
        tool_ids: dict[int, str] = {}  # index -> tool_call_id
        citations: set[str] = set()

        stream = await self._client.chat.completions.create(**kwargs)
        async for chunk in stream:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta

            if delta.content:
                if not text_open:
                    text_open = True
                    yield llm_.TextStart(block_id=_TEXT_BLOCK)
                yield llm_.TextDelta(block_id=_TEXT_BLOCK, delta=delta.content)

            for tc in delta.tool_calls or []:
                if tc.index not in tool_ids and tc.id:
                    tool_ids[tc.index] = tc.id
                    yield llm_.ToolStart(
                        tool_call_id=tc.id,
                        tool_name=(tc.function.name if tc.function else None) or "",
                    )
                tool_id = tool_ids.get(tc.index)
                if tool_id and tc.function and tc.function.arguments:
                    yield llm_.ToolArgsDelta(
                        tool_call_id=tool_id, delta=tc.function.arguments
                    )

            for citation in _citations(delta):
                url = citation.get("url")
                if url and url not in citations:
                    citations.add(url)
                    yield llm_.SourceEvent(
                        source_id=f"source-{len(citations)}",
                        url=url,
                        title=citation.get("title"),
                    )

            if choice.finish_reason is not None:
                if text_open:
                    yield llm_.TextEnd(block_id=_TEXT_BLOCK)
                for tool_id in tool_ids.values():
                    yield llm_.ToolEnd(tool_call_id=tool_id)
                yield llm_.MessageDone(finish_reason=choice.finish_reason)
                return

        # Stream closed without a finish reason
        yield llm_.MessageDone()

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
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise errors_.to_provider_error(exc) from exc

    async def speak(self, text: str, voice: str | None = None) -> bytes:
        try:
            response = await self._client.audio.speech.create(
                model=self._speech_model,
                voice=voice or self._voice,
                input=text,
                response_format="mp3",
            )
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise errors_.to_provider_error(exc) from exc
        return response.content

    async def transcribe(self, audio: bytes, media_type: str, prompt: str) -> str:
        """Transcribe by asking the chat model about an audio attachment."""
        content = [
            {"type": "text", "text": prompt},
            {
                "type": "input_audio",
                "input_audio": {
                    "data": base64.b64encode(audio).decode("ascii"),
                    "format": _audio_format(media_type),
                },
            },
        ]
        try:
            completion = await self._client.chat.completions.create(
                model=self._model,
                messages=[{"role": "user", "content": content}],
            )
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise errors_.to_provider_error(exc) from exc
        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""

    async def generate_image(self, prompt: str) -> str:
        try:
            response = await self._client.images.generate(
                model=self._image_model,
                prompt=prompt,
                response_format="b64_json",
                n=1,
            )
        except (openai.OpenAIError, httpx.HTTPError) as exc:
            raise errors_.to_provider_error(exc) from exc
        image = response.data[0].b64_json if response.data else None
        if not image:
            raise errors_.ProviderError(
                errors_.ErrorKind.INTERNAL, "The provider returned no image data"
            )
        return image

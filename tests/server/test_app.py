"""HTTP endpoints end-to-end, with scripted models in place of providers."""

import asyncio
import json
from collections.abc import Callable
from typing import Any

import anyio
import fastapi.testclient
import httpx
import mcp.types
import pytest

import ai_demos as ai
from ai_demos import ai_sdk_ui
from ai_demos.ai_sdk_ui import ChatClient, user_message
from ai_demos.core import messages
from ai_demos.core.errors import user_message as error_message
from ai_demos.mcp.client import MCPToolClient
from ai_demos.server import Settings, create_app, handlers
from ai_demos.services import images

from ..conftest import MockLLM, text_deltas, text_msg, tool_msg

SETTINGS = Settings(
    openai_api_key="test-key",
    weather_api_key="weather-key",
    imagekit_private_key="ik-private",
    mcp_server_url="https://mcp.example/mcp",
)


class FakeSpeech:
    def __init__(self) -> None:
        self.transcribed: list[tuple[bytes, str]] = []
        self.spoken: list[str] = []

    async def transcribe(self, audio: bytes, media_type: str, prompt: str) -> str:
        self.transcribed.append((audio, media_type))
        return "hello world"

    async def speak(self, text: str, voice: str | None = None) -> bytes:
        self.spoken.append(text)
        return b"ID3-mp3-bytes"


class FakeImages:
    async def generate_image(self, prompt: str) -> str:
        return "aW1hZ2U="


class FakeModels:
    """Hands out one scripted LLM and records which models were asked for."""

    def __init__(self, llm: ai.LanguageModel) -> None:
        self.llm: Any = llm
        self.requested: list[tuple[str, bool]] = []
        self.speech = FakeSpeech()

    def language_model(self, model: str, *, web_search: bool = False) -> ai.LanguageModel:
        self.requested.append((model, web_search))
        return self.llm

    def speech_model(self) -> FakeSpeech:
        return self.speech

    def image_model(self) -> FakeImages:
        return FakeImages()


def make_client(
    *responses: list[messages.Message] | Exception,
    settings: Settings = SETTINGS,
    http_client: Callable[[], httpx.AsyncClient] = httpx.AsyncClient,
) -> tuple[fastapi.testclient.TestClient, FakeModels]:
    models = FakeModels(MockLLM(list(responses)))
    app = create_app(settings, model_factory=models, http_client=http_client)
    return fastapi.testclient.TestClient(app), models


def chat_body(text: str) -> dict[str, Any]:
    return {"messages": [user_message(text).to_wire()]}


def sse_events(body: str) -> list[dict[str, Any]]:
    events = []
    for line in body.splitlines():
        if not line.startswith("data: "):
            continue
        payload = line[len("data: ") :]
        if payload == "[DONE]":
            break
        events.append(json.loads(payload))
    return events


# -- health and errors -------------------------------------------------------------


def test_health() -> None:
    client, _ = make_client()
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_invalid_body_is_400() -> None:
    client, _ = make_client()
    response = client.post("/api/chat", json={"messages": "nope"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("messages:")


def test_empty_user_message_is_400() -> None:
    client, _ = make_client()
    body = {"messages": [{"id": "u1", "role": "user", "parts": []}]}
    response = client.post("/api/chat", json=body)
    assert response.status_code == 400
    assert "no content" in response.json()["error"]


def test_missing_api_key_is_503() -> None:
    app = create_app(Settings())
    response = fastapi.testclient.TestClient(app).post(
        "/api/chat", json=chat_body("Hi")
    )
    assert response.status_code == 503
    assert response.json() == {"error": "OPENAI_API_KEY is not configured"}


def test_rate_limit_before_streaming_is_429() -> None:
    client, _ = make_client(
        ai.ProviderError(ai.ErrorKind.RATE_LIMITED, "upstream said: quota")
    )
    response = client.post("/api/chat", json=chat_body("Hi"))
    assert response.status_code == 429
    # Upstream text is logged, never returned
    assert response.json() == {"error": error_message(ai.ErrorKind.RATE_LIMITED)}


def test_failure_mid_stream_becomes_error_event() -> None:
    class FlakyLLM(ai.LanguageModel):
        async def stream(self, messages, tools=None, output_schema=None):
            yield text_msg("Hel", state="streaming", delta="Hel")
            raise TimeoutError("upstream timed out")

    app = create_app(SETTINGS, model_factory=FakeModels(FlakyLLM()))
    response = fastapi.testclient.TestClient(app).post(
        "/api/chat", json=chat_body("Hi")
    )

    assert response.status_code == 200
    events = sse_events(response.text)
    error = next(e for e in events if e["type"] == "error")
    assert error["errorText"] == error_message(ai.ErrorKind.UPSTREAM_UNAVAILABLE)
    assert events[-1] == {"type": "finish", "finishReason": "error"}


def test_anthropic_web_search_is_503() -> None:
    settings = Settings(ai_provider="anthropic", anthropic_api_key="a-key")
    app = create_app(settings)
    response = fastapi.testclient.TestClient(app).post(
        "/api/web-search-tool", json=chat_body("News?")
    )
    assert response.status_code == 503
    assert "OpenAI-compatible" in response.json()["error"]


# -- chat endpoints ----------------------------------------------------------------


def test_chat_streams_ui_messages() -> None:
    client, models = make_client(text_deltas(["Use ", "a list."]))
    response = client.post("/api/chat", json=chat_body("How do I sort?"))

    assert response.status_code == 200
    assert response.headers["x-vercel-ai-ui-message-stream"] == "v1"
    assert response.headers["content-type"].startswith("text/event-stream")
    assert response.text.endswith("data: [DONE]\n\n")

    events = sse_events(response.text)
    assert [e["type"] for e in events] == [
        "start",
        "start-step",
        "text-start",
        "text-delta",
        "text-delta",
        "text-end",
        "finish-step",
        "finish",
    ]
    assert "".join(e["delta"] for e in events if e["type"] == "text-delta") == (
        "Use a list."
    )

    sent = models.llm.calls[0]["messages"]
    assert sent[0].role == "system"
    assert sent[1].text == "How do I sort?"
    assert models.requested == [(SETTINGS.chat_model, False)]


def test_multi_step_tool_chain() -> None:
    client, models = make_client(
        [tool_msg(name="get_location", args='{"input": "Minar-e-Pakistan"}')],
        [tool_msg(tc_id="tc-2", name="get_weather", args='{"city": "Lahore"}', id="msg-2")],
        [text_msg("It is 52 and sunny in Lahore.", id="msg-3")],
    )
    response = client.post("/api/multi-step-tool", json=chat_body("Weather at Minar?"))

    outputs = [
        e["output"]
        for e in sse_events(response.text)
        if e["type"] == "tool-output-available"
    ]
    assert outputs == ["Lahore", "52 and sunny"]
    assert models.requested == [(SETTINGS.fast_model, False)]
    llm = models.llm
    assert llm.call_count == 3
    assert llm.calls[0]["tools"] == ["get_location", "get_weather"]


def test_multi_step_tool_respects_step_cap() -> None:
    loops = [
        [tool_msg(tc_id=f"tc-{i}", name="get_weather", args='{"city": "Karachi"}', id=f"m{i}")]
        for i in range(6)
    ]
    client, models = make_client(*loops)
    client.post("/api/multi-step-tool", json=chat_body("loop"))
    assert models.llm.call_count == 4


def test_weather_api_uses_live_weather() -> None:
    def weather_api(request: httpx.Request) -> httpx.Response:
        assert request.url.params["key"] == "weather-key"
        return httpx.Response(
            200,
            json={
                "location": {
                    "name": request.url.params["q"],
                    "country": "Pakistan",
                    "localtime": "2025-01-01 12:00",
                },
                "current": {"temp_c": 24.0, "condition": {"text": "Sunny", "code": 1000}},
            },
        )

    client, _ = make_client(
        [tool_msg(name="get_weather", args='{"city": "Karachi"}')],
        [text_msg("24C and sunny.", id="msg-2")],
        http_client=lambda: httpx.AsyncClient(
            transport=httpx.MockTransport(weather_api)
        ),
    )
    response = client.post("/api/weather-api", json=chat_body("Weather in Karachi?"))

    (output,) = [
        e["output"]
        for e in sse_events(response.text)
        if e["type"] == "tool-output-available"
    ]
    assert output["location"]["name"] == "Karachi"
    assert output["current"]["temp_c"] == 24.0


def test_weather_api_without_key_is_tool_error() -> None:
    client, models = make_client(
        [tool_msg(name="get_weather", args='{"city": "Karachi"}')],
        [text_msg("I could not fetch the weather.", id="msg-2")],
        settings=Settings(openai_api_key="test-key"),
    )
    response = client.post("/api/weather-api", json=chat_body("Weather?"))

    assert response.status_code == 200
    (error,) = [e for e in sse_events(response.text) if e["type"] == "tool-output-error"]
    assert error["errorText"] == "WEATHER_API_KEY is not configured"
    assert models.llm.call_count == 2


def test_client_side_tool_pauses_stream() -> None:
    client, models = make_client(
        [
            tool_msg(
                name="remove_background",
                args='{"image_url": "https://ik.imagekit.io/demo/a.jpg"}',
            )
        ],
    )
    response = client.post("/api/client-side-tool", json=chat_body("Remove it"))

    types = [e["type"] for e in sse_events(response.text)]
    assert "tool-input-available" in types
    assert "tool-output-available" not in types
    assert models.llm.call_count == 1


def test_generate_image_tool_uploads() -> None:
    def imagekit(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"url": "https://ik.imagekit.io/demo/toy.jpg"})

    client, _ = make_client(
        [tool_msg(name="generate_image", args='{"prompt": "a toy"}')],
        [text_msg("Here it is.", id="msg-2")],
        http_client=lambda: httpx.AsyncClient(transport=httpx.MockTransport(imagekit)),
    )
    response = client.post("/api/client-side-tool", json=chat_body("Draw a toy"))

    outputs = [
        e["output"]
        for e in sse_events(response.text)
        if e["type"] == "tool-output-available"
    ]
    assert outputs == ["https://ik.imagekit.io/demo/toy.jpg"]


def test_web_search_requests_search_model() -> None:
    client, models = make_client([text_msg("Latest news.")])
    client.post("/api/web-search-tool", json=chat_body("News?"))
    assert models.requested == [(SETTINGS.chat_model, True)]


# -- MCP tools ---------------------------------------------------------------------


class FakeMCPSession:
    def __init__(self) -> None:
        self.closed = 0
        self.close_delay = 0.0
        self.calls: list[str] = []

    async def factory(self, exit_stack: Any) -> "FakeMCPSession":
        async def close() -> None:
            if self.close_delay:
                await anyio.sleep(self.close_delay)
            self.closed += 1

        exit_stack.push_async_callback(close)
        return self

    async def list_tools(self) -> mcp.types.ListToolsResult:
        schema = {"type": "object", "properties": {"text": {"type": "string"}}}
        return mcp.types.ListToolsResult(
            tools=[
                mcp.types.Tool(name="get_weather", description="remote", inputSchema=schema),
                mcp.types.Tool(name="echo", description="Echo", inputSchema=schema),
            ]
        )

    async def call_tool(
        self, name: str, arguments: dict[str, Any]
    ) -> mcp.types.CallToolResult:
        self.calls.append(name)
        return mcp.types.CallToolResult(
            content=[mcp.types.TextContent(type="text", text=arguments["text"])]
        )


@pytest.fixture
def mcp_session(monkeypatch: pytest.MonkeyPatch) -> FakeMCPSession:
    session = FakeMCPSession()

    def client_factory(url: str, **kwargs: Any) -> MCPToolClient:
        return MCPToolClient(url, session_factory=session.factory, **kwargs)

    monkeypatch.setattr(handlers, "MCPToolClient", client_factory)
    return session


def test_mcp_tools_merges_remote_tools(mcp_session: FakeMCPSession) -> None:
    client, models = make_client(
        [tool_msg(name="echo", args='{"text": "hi"}')],
        [tool_msg(tc_id="tc-2", name="get_weather", args='{"city": "Karachi"}', id="msg-2")],
        [text_msg("52 and sunny.", id="msg-3")],
    )
    response = client.post("/api/mcp-tools", json=chat_body("Echo and weather"))

    outputs = [
        e["output"]
        for e in sse_events(response.text)
        if e["type"] == "tool-output-available"
    ]
    # The local get_weather wins over the remote one
    assert outputs == ["hi", "52 and sunny"]
    assert mcp_session.calls == ["echo"]
    assert models.llm.calls[0]["tools"] == ["get_weather", "echo"]
    assert mcp_session.closed == 1


def test_mcp_session_closed_on_failure(mcp_session: FakeMCPSession) -> None:
    client, _ = make_client(ai.ProviderError(ai.ErrorKind.INTERNAL, "boom"))
    response = client.post("/api/mcp-tools", json=chat_body("x"))

    assert response.status_code == 200
    assert any(e["type"] == "error" for e in sse_events(response.text))
    assert mcp_session.closed == 1


@pytest.mark.asyncio
async def test_mcp_session_closed_when_client_disconnects(
    mcp_session: FakeMCPSession,
) -> None:
    class StalledLLM(ai.LanguageModel):
        async def stream(self, messages, tools=None, output_schema=None):
            yield text_msg("Thinking", state="streaming", delta="Thinking")
            await asyncio.Event().wait()

    mcp_session.close_delay = 0.01
    client = handlers.MCPToolClient("https://mcp.example/mcp")
    config = handlers.EndpointConfig(name="mcp-tools", max_steps=3, remote_tools=True)
    body = ai_sdk_ui.to_sse_stream(
        handlers._run_with_remote_tools(
            StalledLLM(), ai.make_messages(user="x"), config, client
        )
    )
    received: list[str] = []
    first_event = anyio.Event()

    async def consume() -> None:
        async for line in body:
            received.append(line)
            first_event.set()

    # Starlette cancels the response task group when the browser goes away.
    async with anyio.create_task_group() as tg:
        tg.start_soon(consume)
        await first_event.wait()
        tg.cancel_scope.cancel()

    assert received
    assert mcp_session.closed == 1


def test_mcp_tools_without_server_is_503() -> None:
    client, _ = make_client(settings=Settings(openai_api_key="test-key"))
    response = client.post("/api/mcp-tools", json=chat_body("x"))
    assert response.status_code == 503
    assert response.json() == {"error": "MCP_SERVER_URL is not configured"}


# -- one-shot endpoints --------------------------------------------------------------


def test_completion() -> None:
    client, _ = make_client(text_deltas(["Use ", "sorted()."]))
    response = client.post("/api/completion", json={"prompt": "Sort a list?"})
    assert response.status_code == 200
    assert response.json() == {"text": "Use sorted()."}


def test_stream_endpoint() -> None:
    client, models = make_client(text_deltas(["a", "b"]))
    response = client.post("/api/stream", json={"prompt": "x"})
    deltas = [e["delta"] for e in sse_events(response.text) if e["type"] == "text-delta"]
    assert deltas == ["a", "b"]
    assert models.requested == [(SETTINGS.fast_model, False)]


def test_generate_image_endpoint() -> None:
    client, _ = make_client()
    response = client.post("/api/generate-image", json={"prompt": "a cat"})
    assert response.json() == "aW1hZ2U="


def test_generate_image_prompt_too_long() -> None:
    client, _ = make_client()
    prompt = "x" * (images.MAX_PROMPT_LENGTH + 1)
    response = client.post("/api/generate-image", json={"prompt": prompt})
    assert response.status_code == 400
    assert "too long" in response.json()["error"]


def test_structured_data_streams_json_text() -> None:
    doc = {
        "recipe": {
            "name": "Biryani",
            "ingredients": [{"name": "rice", "amount": "2 cups"}],
            "steps": ["Cook"],
        }
    }
    text = json.dumps(doc)
    client, models = make_client(text_deltas([text[:20], text[20:]]))
    response = client.post("/api/structured-data", json={"dish": "Biryani"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert json.loads(response.text) == doc
    schema = models.llm.calls[0]["output_schema"]
    assert schema["title"] == "RecipeDocument"


def test_structured_array_streams_wrapped_elements() -> None:
    doc = {"elements": [{"name": "Charmander", "abilities": ["Blaze"]}]}
    client, _ = make_client(text_deltas([json.dumps(doc)]))
    response = client.post("/api/structured-array", json={"type": "fire"})
    assert json.loads(response.text) == doc


def test_structured_enums() -> None:
    client, _ = make_client(text_deltas(['{"result": "positive"}']))
    response = client.post("/api/structured-enums", json={"text": "I love it"})
    assert response.json() == "positive"


def test_transcribe_audio() -> None:
    client, models = make_client()
    response = client.post(
        "/api/transcribe-audio",
        files={"audio": ("clip.wav", b"RIFF....", "audio/wav")},
    )
    assert response.status_code == 200
    assert response.json() == {"transcript": "hello world"}
    assert models.speech.transcribed == [(b"RIFF....", "audio/wav")]


def test_transcribe_audio_without_file_is_400() -> None:
    client, _ = make_client()
    response = client.post(
        "/api/transcribe-audio", files={"other": ("x.txt", b"x", "text/plain")}
    )
    assert response.status_code == 400
    assert response.json() == {"error": "No audio file provided"}


def test_tts() -> None:
    client, models = make_client()
    response = client.post("/api/tts", json={"text": "Hello there"})
    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/mpeg"
    assert response.content == b"ID3-mp3-bytes"
    assert models.speech.spoken == ["Hello there"]


def test_tts_requires_text() -> None:
    client, _ = make_client()
    response = client.post("/api/tts", json={"text": ""})
    assert response.status_code == 400


# -- headless useChat against the app ------------------------------------------------


@pytest.mark.asyncio
async def test_chat_client_round_trip_with_client_tool() -> None:
    models = FakeModels(
        MockLLM(
            [
                [
                    tool_msg(
                        name="remove_background",
                        args='{"image_url": "https://ik.imagekit.io/demo/a.jpg"}',
                    )
                ],
                [text_msg("Done, the background is gone.", id="msg-2")],
            ]
        )
    )
    app = create_app(SETTINGS, model_factory=models)

    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://test"
    ) as http:
        chat = ChatClient(
            "http://test/api", http, client_tools=images.CLIENT_TOOL_HANDLERS
        )
        history = await chat.send(
            "/client-side-tool", [user_message("Remove the background")]
        )

    assert [m.role for m in history] == ["user", "assistant"]
    assistant = history[1]
    tool_part = assistant.tool_parts[0]
    assert tool_part.state == "output-available"
    assert tool_part.output == "https://ik.imagekit.io/demo/a.jpg?tr=e-bgremove"
    assert assistant.text == "Done, the background is gone."

    # The second model call saw the browser's tool output
    resent = models.llm.calls[1]["messages"]
    resolved = [tc for m in resent for tc in m.tool_calls]
    assert resolved[0].state == "output-available"

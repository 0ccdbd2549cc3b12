"""The demo endpoints, mounted under ``/api``."""

from __future__ import annotations

import fastapi
import fastapi.responses
import pydantic

from .. import ai_sdk_ui
from ..core import errors as errors_
from ..core import messages as messages_
from ..core import structured
from ..core import tools as tools_
from ..services import images
from . import tools as demo_tools
from .handlers import EndpointConfig, chat_endpoint, primed
from .models import ModelFactory
from .settings import Settings

BRIEF_SYSTEM = (
    "You are a helpful coding assistant. Keep responses under 2 sentences "
    "and focus on useful and required information only."
)
CHAT_SYSTEM = (
    "You are a helpful coding assistant. Keep responses under 3 sentences "
    "and focus on practical examples."
)
IMAGE_SYSTEM = (
    "You are a helpful AI assistant for image generation and editing. When a "
    "user refers to a recent image they just created (using phrases like 'the "
    "toy image', 'that image', 'the previous image', 'the last image'), look at "
    "the conversation history to find the URL from the most recent "
    "generate_image tool result and use that URL automatically. Do not ask the "
    "user to provide the URL again."
)
TRANSCRIBE_PROMPT = (
    "Process this audio file and generate a highly accurate, detailed "
    "transcription. Identify distinct speakers if applicable."
)
SENTIMENTS = ("positive", "negative", "neutral")


# -- Request bodies -----------------------------------------------------------


class PromptRequest(pydantic.BaseModel):
    prompt: str


class RecipeRequest(pydantic.BaseModel):
    dish: str


class PokemonRequest(pydantic.BaseModel):
    type: str


class SentimentRequest(pydantic.BaseModel):
    text: str


class SpeechRequest(pydantic.BaseModel):
    text: str = pydantic.Field(min_length=1)


class CompletionResponse(pydantic.BaseModel):
    text: str


class TranscriptResponse(pydantic.BaseModel):
    transcript: str


# -- Structured output schemas -------------------------------------------------


class Ingredient(pydantic.BaseModel):
    name: str
    amount: str


class Recipe(pydantic.BaseModel):
    name: str
    ingredients: list[Ingredient]
    steps: list[str]


class RecipeDocument(pydantic.BaseModel):
    recipe: Recipe


class Pokemon(pydantic.BaseModel):
    name: str
    abilities: list[str]


# -- Router --------------------------------------------------------------------


def chat_endpoints(
    settings: Settings,
    models: ModelFactory,
    http_client: demo_tools.HttpClientFactory,
) -> list[EndpointConfig]:
    return [
        EndpointConfig(name="chat", system=CHAT_SYSTEM),
        EndpointConfig(name="multi-modal-chat"),
        EndpointConfig(
            name="multi-step-tool",
            model="fast",
            tools=demo_tools.multi_step_tools(),
            max_steps=4,
        ),
        EndpointConfig(
            name="weather-api",
            tools=demo_tools.live_weather_tools(settings, http_client),
            max_steps=2,
        ),
        EndpointConfig(
            name="mcp-tools",
            model="fast",
            tools=tools_.ToolRegistry([demo_tools.get_weather]),
            max_steps=3,
            remote_tools=True,
        ),
        EndpointConfig(name="web-search-tool", max_steps=3, web_search=True),
        EndpointConfig(
            name="client-side-tool",
            model="fast",
            system=IMAGE_SYSTEM,
            tools=demo_tools.image_tools(settings, models, http_client),
            max_steps=3,
        ),
    ]


def build_router(
    settings: Settings,
    models: ModelFactory,
    http_client: demo_tools.HttpClientFactory,
) -> fastapi.APIRouter:
    router = fastapi.APIRouter()

    for config in chat_endpoints(settings, models, http_client):
        router.add_api_route(
            f"/{config.name}",
            chat_endpoint(config, settings, models),
            methods=["POST"],
        )

    @router.post("/completion")
    async def completion(request: PromptRequest) -> CompletionResponse:
        llm = models.language_model(settings.chat_model)
        text = await llm.generate_text(
            messages_.make_messages(system=BRIEF_SYSTEM, user=request.prompt)
        )
        return CompletionResponse(text=text)

    @router.post("/stream")
    async def stream(request: PromptRequest) -> fastapi.responses.StreamingResponse:
        llm = models.language_model(settings.fast_model)
        messages = messages_.make_messages(system=BRIEF_SYSTEM, user=request.prompt)
        return fastapi.responses.StreamingResponse(
            ai_sdk_ui.to_sse_stream(await primed(llm.stream(messages))),
            headers=ai_sdk_ui.UI_MESSAGE_STREAM_HEADERS,
        )

    @router.post("/generate-image")
    async def generate_image(request: PromptRequest) -> str:
        return await images.generate_image(models.image_model(), request.prompt)

    @router.post("/structured-data")
    async def structured_data(
        request: RecipeRequest,
    ) -> fastapi.responses.StreamingResponse:
        llm = models.language_model(settings.fast_model)
        chunks = structured.stream_object(
            llm,
            RecipeDocument,
            messages_.make_messages(user=f"Generate a recipe for : {request.dish}"),
        )
        return fastapi.responses.StreamingResponse(
            ai_sdk_ui.to_text_stream(await primed(chunks)),
            headers=ai_sdk_ui.TEXT_STREAM_HEADERS,
        )

    @router.post("/structured-array")
    async def structured_array(
        request: PokemonRequest,
    ) -> fastapi.responses.StreamingResponse:
        llm = models.language_model(settings.fast_model)
        chunks = structured.stream_object(
            llm,
            Pokemon,
            messages_.make_messages(
                user=f"Generate a list of 5 : {request.type} type pokemon."
            ),
            output="array",
        )
        return fastapi.responses.StreamingResponse(
            ai_sdk_ui.to_text_stream(await primed(chunks)),
            headers=ai_sdk_ui.TEXT_STREAM_HEADERS,
        )

    @router.post("/structured-enums")
    async def structured_enums(request: SentimentRequest) -> str:
        llm = models.language_model(settings.fast_model)
        return await structured.generate_enum(
            llm,
            SENTIMENTS,
            messages_.make_messages(
                user=f"Classify the sentiment in this text: {request.text}"
            ),
        )

    @router.post("/transcribe-audio")
    async def transcribe_audio(
        audio: fastapi.UploadFile | None = fastapi.File(None),
    ) -> TranscriptResponse:
        if audio is None:
            raise errors_.ProviderError(
                errors_.ErrorKind.INVALID_REQUEST, "No audio file provided"
            )
        data = await audio.read()
        transcript = await models.speech_model().transcribe(
            data, audio.content_type or "audio/wav", TRANSCRIBE_PROMPT
        )
        return TranscriptResponse(transcript=transcript)

    @router.post("/tts")
    async def tts(request: SpeechRequest) -> fastapi.responses.Response:
        audio = await models.speech_model().speak(request.text)
        return fastapi.responses.Response(
            content=audio,
            media_type="audio/mpeg",
            headers={"Cache-Control": "public, max-age=3600"},
        )

    return router

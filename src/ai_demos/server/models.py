from __future__ import annotations

from typing import Protocol

from .. import anthropic as anthropic_
from .. import openai as openai_
from ..core import errors as errors_
from ..core import llm as llm_
from .settings import Settings


class ModelFactory(Protocol):
    """Builds provider clients for one request."""

    def language_model(
        self, model: str, *, web_search: bool = False
    ) -> llm_.LanguageModel: ...

    def speech_model(self) -> llm_.SpeechModel: ...

    def image_model(self) -> llm_.ImageModel: ...


class ProviderModels:
    """Default factory: the provider chosen by ``AI_PROVIDER``.

    Speech, images and web search are only offered through the
    OpenAI-compatible API, whichever provider serves plain chat.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    def _openai(self, model: str, web_search: bool = False) -> openai_.OpenAIModel:
        s = self._settings
        return openai_.OpenAIModel(
            model=model,
            base_url=s.openai_base_url,
            api_key=s.require("openai_api_key"),
            web_search=web_search,
            speech_model=s.tts_model,
            voice=s.tts_voice,
            image_model=s.image_model,
            timeout=s.http_timeout,
        )

    def language_model(
        self, model: str, *, web_search: bool = False
    ) -> llm_.LanguageModel:
        s = self._settings
        if s.ai_provider != "anthropic":
            return self._openai(model, web_search)
        if web_search:
            raise errors_.ProviderError(
                errors_.ErrorKind.CONFIGURATION,
                "Web search needs the OpenAI-compatible provider (AI_PROVIDER=openai)",
            )
        return anthropic_.AnthropicModel(
            model=model,
            api_key=s.require("anthropic_api_key"),
            timeout=s.http_timeout,
        )

    def _audio_chat_model(self) -> str:
        # Transcription goes through the OpenAI-compatible chat model.
        s = self._settings
        return s.chat_model if s.ai_provider != "anthropic" else openai_.DEFAULT_MODEL

    def speech_model(self) -> llm_.SpeechModel:
        return self._openai(self._audio_chat_model())

    def image_model(self) -> llm_.ImageModel:
        return self._openai(self._audio_chat_model())

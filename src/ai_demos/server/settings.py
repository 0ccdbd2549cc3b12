from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping

from dotenv import load_dotenv

from ..core import errors as errors_
from ..openai import DEFAULT_BASE_URL

_DEFAULT_MODELS = {
    "openai": ("gemini-2.5-flash", "gemini-2.5-flash-lite"),
    "anthropic": ("claude-sonnet-4-5-20250929", "claude-haiku-4-5-20251001"),
}


@dataclasses.dataclass(frozen=True)
class Settings:
    """Process-wide configuration, read once at startup and never mutated.

    API keys may be missing: only the endpoints that need one fail, through
    ``require``.
    """

    ai_provider: str = "openai"
    openai_api_key: str | None = None
    openai_base_url: str | None = DEFAULT_BASE_URL
    anthropic_api_key: str | None = None
    chat_model: str = "gemini-2.5-flash"
    fast_model: str = "gemini-2.5-flash-lite"
    tts_model: str = "gemini-2.5-flash-preview-tts"
    tts_voice: str = "Aoede"
    image_model: str = "imagen-3.0-generate-002"
    weather_api_key: str | None = None
    imagekit_private_key: str | None = None
    mcp_server_url: str | None = None
    mcp_auth_token: str | None = None
    port: int = 8000
    log_level: str = "INFO"
    http_timeout: float = 30.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``environ``, or from ``.env`` plus os.environ."""
        if environ is None:
            load_dotenv()
            environ = os.environ

        def get(name: str) -> str | None:
            return environ.get(name) or None

        provider = (get("AI_PROVIDER") or "openai").lower()
        if provider not in _DEFAULT_MODELS:
            raise ValueError(
                f"AI_PROVIDER must be one of {sorted(_DEFAULT_MODELS)}, "
                f"got {provider!r}"
            )
        chat_model, fast_model = _DEFAULT_MODELS[provider]

        return cls(
            ai_provider=provider,
            openai_api_key=(
                get("OPENAI_API_KEY")
                or get("GEMINI_API_KEY")
                or get("GOOGLE_GENERATIVE_AI_API_KEY")
            ),
            openai_base_url=get("OPENAI_BASE_URL") or DEFAULT_BASE_URL,
            anthropic_api_key=get("ANTHROPIC_API_KEY"),
            chat_model=get("CHAT_MODEL") or chat_model,
            fast_model=get("FAST_MODEL") or fast_model,
            tts_model=get("TTS_MODEL") or cls.tts_model,
            tts_voice=get("TTS_VOICE") or cls.tts_voice,
            image_model=get("IMAGE_MODEL") or cls.image_model,
            weather_api_key=get("WEATHER_API_KEY"),
            imagekit_private_key=get("IMAGEKIT_PRIVATE_KEY"),
            mcp_server_url=get("MCP_SERVER_URL"),
            mcp_auth_token=get("MCP_AUTH_TOKEN"),
            port=int(get("PORT") or cls.port),
            log_level=(get("LOG_LEVEL") or cls.log_level).upper(),
            http_timeout=float(get("HTTP_TIMEOUT") or cls.http_timeout),
        )

    def require(self, name: str) -> str:
        """The value of setting ``name``, which this call site cannot do without."""
        value = getattr(self, name)
        if not value:
            raise errors_.ProviderError(
                errors_.ErrorKind.CONFIGURATION,
                f"{name.upper()} is not configured",
            )
        return value

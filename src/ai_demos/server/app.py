"""FastAPI application factory."""

from __future__ import annotations

import logging

import fastapi
import fastapi.exceptions
import fastapi.middleware.cors
import fastapi.responses
import httpx

from ..core import errors as errors_
from . import routes
from .models import ModelFactory, ProviderModels
from .settings import Settings
from .tools import HttpClientFactory

logger = logging.getLogger(__name__)

# Kinds whose own message is safe and useful to show the caller.
_DETAILED_KINDS = frozenset(
    {errors_.ErrorKind.INVALID_REQUEST, errors_.ErrorKind.CONFIGURATION}
)


def _error_response(status_code: int, message: str) -> fastapi.responses.JSONResponse:
    return fastapi.responses.JSONResponse({"error": message}, status_code=status_code)


async def _provider_error(
    request: fastapi.Request, exc: errors_.ProviderError
) -> fastapi.responses.JSONResponse:
    if exc.kind in _DETAILED_KINDS:
        message = str(exc)
        logger.warning("%s %s: %s", request.method, request.url.path, message)
    else:
        message = errors_.user_message(exc.kind)
        logger.error(
            "%s %s failed (%s): %s",
            request.method,
            request.url.path,
            exc.kind.value,
            exc,
        )
    return _error_response(exc.status_code, message)


async def _validation_error(
    request: fastapi.Request, exc: fastapi.exceptions.RequestValidationError
) -> fastapi.responses.JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    detail = first.get("msg", "Invalid request body")
    message = f"{location}: {detail}" if location else detail
    return _error_response(400, message)


def create_app(
    settings: Settings | None = None,
    model_factory: ModelFactory | None = None,
    http_client: HttpClientFactory = httpx.AsyncClient,
) -> fastapi.FastAPI:
    """Build the app.

    Missing API keys never fail startup; only the endpoints that need a key
    answer 503 until it is configured.
    """
    settings = settings or Settings.from_env()
    models = model_factory or ProviderModels(settings)

    api = fastapi.FastAPI(
        title="ai-demos",
        description="AI SDK UI demo endpoints",
    )
    api.add_middleware(
        fastapi.middleware.cors.CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    api.add_exception_handler(errors_.ProviderError, _provider_error)
    api.add_exception_handler(
        fastapi.exceptions.RequestValidationError, _validation_error
    )
    api.include_router(routes.build_router(settings, models, http_client))

    app = fastapi.FastAPI(title="ai-demos")

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok"}

    app.mount("/api", api)
    app.state.settings = settings
    return app

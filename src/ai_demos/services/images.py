"""Image generation, hosting on ImageKit, and ImageKit URL transformations."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import httpx

from ..core import errors as errors_
from ..core import llm as llm_
from . import http as http_

IMAGEKIT_UPLOAD_URL = "https://upload.imagekit.io/api/v1/files/upload"

MAX_PROMPT_LENGTH = 1000


async def generate_image(model: llm_.ImageModel, prompt: str) -> str:
    """Base64 image for ``prompt``."""
    if not prompt:
        raise errors_.ProviderError(
            errors_.ErrorKind.INVALID_REQUEST, "Prompt is required and must be a string"
        )
    if len(prompt) > MAX_PROMPT_LENGTH:
        raise errors_.ProviderError(
            errors_.ErrorKind.INVALID_REQUEST,
            f"Prompt is too long. Please keep it under {MAX_PROMPT_LENGTH} "
            "characters for reliable generation.",
        )
    return await model.generate_image(prompt)


async def upload_image(
    client: httpx.AsyncClient,
    image_base64: str,
    private_key: str,
    *,
    file_name: str = "generated-image.jpg",
    upload_url: str = IMAGEKIT_UPLOAD_URL,
    timeout: float = http_.DEFAULT_TIMEOUT,
) -> str:
    """Host a base64 image on ImageKit and return its public URL."""
    response = await http_.request_with_retry(
        client,
        "POST",
        upload_url,
        # multipart form fields without a filename
        files={"file": (None, image_base64), "fileName": (None, file_name)},
        auth=(private_key, ""),
        timeout=timeout,
    )
    payload: dict[str, Any] = response.json()
    url = payload.get("url")
    if not isinstance(url, str):
        raise errors_.ProviderError(
            errors_.ErrorKind.INTERNAL, "ImageKit upload returned no URL"
        )
    return url


def build_transformation_url(url: str, transformation: str) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}tr={transformation}"


# Client-side tool handlers: they only rewrite the hosted image URL.


async def remove_background(args: dict[str, Any]) -> str:
    return build_transformation_url(args["image_url"], "e-bgremove")


async def change_background(args: dict[str, Any]) -> str:
    prompt = quote(args["background_prompt"], safe="")
    return build_transformation_url(args["image_url"], f"e-changebg-prompt-{prompt}")


CLIENT_TOOL_HANDLERS = {
    "remove_background": remove_background,
    "change_background": change_background,
}

"""Tool registries for the chat endpoints, defined once at startup."""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Any

import httpx
import pydantic

from ..core import tools as tools_
from ..services import images, weather
from .models import ModelFactory
from .settings import Settings

HttpClientFactory = Callable[[], httpx.AsyncClient]

City = Annotated[str, pydantic.Field(description="The city to get weather for")]


@tools_.tool
async def get_weather(city: City) -> str:
    """use this to get weather data"""
    if city == "Karachi":
        return "52 and sunny"
    if city == "Islamabad":
        return "35 and cloudy"
    return "Unknown City"


def multi_step_tools() -> tools_.ToolRegistry:
    @tools_.tool
    async def get_location(
        input: Annotated[
            str,
            pydantic.Field(
                description="The person/user or famous object to get location of"
            ),
        ],
    ) -> str:
        """Call this when you want to know location of a person/user or famous object"""
        if input == "Minar-e-Pakistan":
            return "Lahore"
        if input == "Imran Khan":
            return "Islamabad"
        return "Unknown Input"

    @tools_.tool
    async def get_weather(city: City) -> str:
        """use this to get weather data"""
        if city in ("Karachi", "Lahore"):
            return "52 and sunny"
        if city == "Islamabad":
            return "35 and cloudy"
        return "Unknown City"

    return tools_.ToolRegistry([get_location, get_weather])


def live_weather_tools(
    settings: Settings, http_client: HttpClientFactory
) -> tools_.ToolRegistry:
    @tools_.tool
    async def get_weather(city: City) -> dict[str, Any]:
        """use this to get weather data"""
        api_key = settings.require("weather_api_key")
        async with http_client() as client:
            return await weather.fetch_current_weather(
                client, city, api_key, timeout=settings.http_timeout
            )

    return tools_.ToolRegistry([get_weather])


class ImageUrlArgs(pydantic.BaseModel):
    image_url: str = pydantic.Field(
        description=(
            "URL of the image to process. Use the URL from the most recent "
            "generate_image tool result if the user refers to a recent image."
        )
    )


class ChangeBackgroundArgs(ImageUrlArgs):
    background_prompt: str = pydantic.Field(
        description="Description of the new background"
    )


_RECENT_IMAGE_HINT = (
    "When the user refers to a recent image (e.g., 'the toy image', 'that "
    "image', 'the previous image'), look at the conversation history to find "
    "the most recently generated image URL and use that."
)


def image_tools(
    settings: Settings, models: ModelFactory, http_client: HttpClientFactory
) -> tools_.ToolRegistry:
    """Image generation on the server; background edits in the browser."""

    @tools_.tool
    async def generate_image(
        prompt: Annotated[
            str, pydantic.Field(description="The Prompt to generate image for")
        ],
    ) -> str:
        """Use this tool to generate images"""
        private_key = settings.require("imagekit_private_key")
        image = await images.generate_image(models.image_model(), prompt)
        async with http_client() as client:
            return await images.upload_image(
                client, image, private_key, timeout=settings.http_timeout
            )

    return tools_.ToolRegistry(
        [
            generate_image,
            tools_.client_tool(
                "remove_background",
                f"Use this tool to remove background of an image. {_RECENT_IMAGE_HINT}",
                ImageUrlArgs,
            ),
            tools_.client_tool(
                "change_background",
                f"Use this tool to change background of an image. {_RECENT_IMAGE_HINT}",
                ChangeBackgroundArgs,
            ),
        ]
    )

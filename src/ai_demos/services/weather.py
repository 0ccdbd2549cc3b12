from __future__ import annotations

from typing import Any

import httpx
import pydantic

from ..core import errors as errors_
from . import http as http_

WEATHER_API_URL = "http://api.weatherapi.com/v1"


class Condition(pydantic.BaseModel):
    text: str
    code: int


class Location(pydantic.BaseModel):
    name: str
    country: str
    localtime: str


class Current(pydantic.BaseModel):
    temp_c: float
    condition: Condition


class CurrentWeather(pydantic.BaseModel):
    """The subset of weatherapi.com's ``current.json`` the chat tools return."""

    location: Location
    current: Current


async def fetch_current_weather(
    client: httpx.AsyncClient,
    city: str,
    api_key: str,
    *,
    base_url: str = WEATHER_API_URL,
    timeout: float = http_.DEFAULT_TIMEOUT,
) -> dict[str, Any]:
    """Current conditions for ``city``.

    Raises:
        httpx.HTTPError: the request failed after retrying.
        errors.ProviderError: the response did not have the expected shape.
    """
    response = await http_.request_with_retry(
        client,
        "GET",
        f"{base_url}/current.json",
        params={"key": api_key, "q": city},
        timeout=timeout,
    )
    try:
        weather = CurrentWeather.model_validate(response.json())
    except (ValueError, pydantic.ValidationError) as exc:
        raise errors_.ProviderError(
            errors_.ErrorKind.INTERNAL,
            f"Unexpected weather API response for {city!r}",
        ) from exc
    return weather.model_dump()

"""Demo tool tables: canned weather and locations."""

import pytest

from ai_demos.server import tools


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("city", "expected"),
    [
        ("Karachi", "52 and sunny"),
        ("Islamabad", "35 and cloudy"),
        ("Lahore", "Unknown City"),
        ("Atlantis", "Unknown City"),
    ],
)
async def test_chat_weather(city: str, expected: str) -> None:
    assert await tools.get_weather.validate_and_call(f'{{"city": "{city}"}}') == expected


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("city", "expected"),
    [
        ("Karachi", "52 and sunny"),
        ("Lahore", "52 and sunny"),
        ("Islamabad", "35 and cloudy"),
        ("Atlantis", "Unknown City"),
    ],
)
async def test_multi_step_weather(city: str, expected: str) -> None:
    get_weather = tools.multi_step_tools()["get_weather"]
    assert await get_weather(city=city) == expected


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("place", "expected"),
    [
        ("Minar-e-Pakistan", "Lahore"),
        ("Imran Khan", "Islamabad"),
        ("Eiffel Tower", "Unknown Input"),
    ],
)
async def test_get_location(place: str, expected: str) -> None:
    get_location = tools.multi_step_tools()["get_location"]
    assert await get_location.validate_and_call(f'{{"input": "{place}"}}') == expected


def test_multi_step_registry() -> None:
    registry = tools.multi_step_tools()
    assert sorted(registry) == ["get_location", "get_weather"]
    assert registry["get_weather"].param_schema["properties"]["city"]["description"] == (
        "The city to get weather for"
    )

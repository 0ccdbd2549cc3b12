"""Schema-constrained generation: streamed objects/arrays and enum classification."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import AsyncGenerator, Sequence
from typing import Any, Literal

import pydantic

from . import errors as errors_
from . import llm as llm_
from . import messages as messages_
from . import partial_json

OutputMode = Literal["object", "array"]

_ARRAY_KEY = "elements"


@dataclasses.dataclass
class ObjectChunk:
    """One step of a streamed structured output."""

    text_delta: str
    partial: Any
    done: bool = False


def output_schema(
    schema: type[pydantic.BaseModel], output: OutputMode
) -> dict[str, Any]:
    """JSON Schema sent to the provider for ``schema`` in the given mode.

    Arrays are wrapped in an object because providers only constrain
    top-level objects.
    """
    element = schema.model_json_schema()
    if output == "object":
        return element
    defs = element.pop("$defs", None)
    wrapped: dict[str, Any] = {
        "type": "object",
        "title": f"{schema.__name__}List",
        "properties": {_ARRAY_KEY: {"type": "array", "items": element}},
        "required": [_ARRAY_KEY],
        "additionalProperties": False,
    }
    if defs:
        wrapped["$defs"] = defs
    return wrapped


def _unwrap(value: Any, output: OutputMode) -> Any:
    if output == "array":
        if isinstance(value, dict):
            return value.get(_ARRAY_KEY, [])
        return []
    return value if isinstance(value, dict) else {}


def _validate(schema: type[pydantic.BaseModel], output: OutputMode, value: Any) -> Any:
    adapter: pydantic.TypeAdapter[Any] = (
        pydantic.TypeAdapter(list[schema])  # type: ignore[valid-type]
        if output == "array"
        else pydantic.TypeAdapter(schema)
    )
    try:
        validated = adapter.validate_python(value)
    except pydantic.ValidationError as exc:
        raise errors_.ProviderError(
            errors_.ErrorKind.INTERNAL,
            f"Model output did not match the {schema.__name__} schema: {exc}",
        ) from exc
    return adapter.dump_python(validated, mode="json")


async def stream_object(
    llm: llm_.LanguageModel,
    schema: type[pydantic.BaseModel],
    messages: list[messages_.Message],
    *,
    output: OutputMode = "object",
) -> AsyncGenerator[ObjectChunk]:
    """Stream a schema-constrained object (or array of objects).

    Every text delta is yielded together with the best partial value parsed
    from the text so far. The final chunk carries the validated value.
    """
    text = ""
    partial: Any = [] if output == "array" else {}

    async for msg in llm.stream(messages, output_schema=output_schema(schema, output)):
        delta = msg.text_delta
        if not delta:
            continue
        text += delta
        try:
            parsed = partial_json.parse_partial_json(text)
        except ValueError:
            parsed = None
        if parsed is not None:
            partial = _unwrap(parsed, output)
        yield ObjectChunk(text_delta=delta, partial=partial)

    try:
        final = json.loads(text)
    except json.JSONDecodeError as exc:
        raise errors_.ProviderError(
            errors_.ErrorKind.INTERNAL, f"Model output is not valid JSON: {exc}"
        ) from exc
    yield ObjectChunk(
        text_delta="",
        partial=_validate(schema, output, _unwrap(final, output)),
        done=True,
    )


def enum_schema(choices: Sequence[str]) -> dict[str, Any]:
    return {
        "type": "object",
        "title": "Classification",
        "properties": {"result": {"type": "string", "enum": list(choices)}},
        "required": ["result"],
        "additionalProperties": False,
    }


async def generate_enum(
    llm: llm_.LanguageModel,
    choices: Sequence[str],
    messages: list[messages_.Message],
) -> str:
    """Classify into exactly one of ``choices``."""
    text = await llm.generate_text(messages, output_schema=enum_schema(choices))
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        data = text.strip().strip('"')
    value = data.get("result") if isinstance(data, dict) else data
    if value not in choices:
        raise errors_.ProviderError(
            errors_.ErrorKind.INTERNAL,
            f"Model answered {value!r}, expected one of {list(choices)}",
        )
    return value

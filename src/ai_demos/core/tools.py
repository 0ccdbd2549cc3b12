from __future__ import annotations

import inspect
import json
from collections.abc import Awaitable, Callable, Iterable, Iterator, Mapping
from typing import Any, Protocol, get_type_hints, runtime_checkable

import pydantic

ToolHandler = Callable[..., Awaitable[Any]]


@runtime_checkable
class ToolLike(Protocol):
    """Anything the LLM layer can use as a tool definition."""

    @property
    def name(self) -> str: ...
    @property
    def description(self) -> str: ...
    @property
    def param_schema(self) -> dict[str, Any]: ...


class ToolSchema(pydantic.BaseModel):
    """What the LLM sees: name, description, and JSON Schema for parameters."""

    name: str
    description: str
    param_schema: dict[str, Any]


class Tool:
    """A named, schema-typed function the model may ask to have run.

    Tools without a handler are client-side: the server streams the call to
    the browser and waits for the browser to supply the output.
    """

    def __init__(
        self,
        schema: ToolSchema,
        fn: ToolHandler | None = None,
        validator: type[pydantic.BaseModel] | None = None,
    ) -> None:
        self._fn = fn
        self._validator = validator
        self.schema = schema

    async def __call__(self, *args: Any, **kwargs: Any) -> Any:
        if self._fn is None:
            raise TypeError(f"Tool {self.name!r} runs on the client")
        return await self._fn(*args, **kwargs)

    def parse_args(self, json_str: str) -> dict[str, Any]:
        """Decode and validate LLM-generated arguments.

        Raises json.JSONDecodeError or pydantic.ValidationError.
        """
        kwargs = json.loads(json_str) if json_str else {}
        if not isinstance(kwargs, dict):
            raise ValueError(f"Tool arguments must be a JSON object, got {json_str!r}")
        # validate llm-generated inputs (skipped for MCP tools)
        if self._validator is not None:
            self._validator.model_validate(kwargs)
        return kwargs

    async def validate_and_call(self, json_str: str) -> Any:
        kwargs = self.parse_args(json_str)
        return await self(**kwargs)

    @property
    def is_client_side(self) -> bool:
        return self._fn is None

    @property
    def name(self) -> str:
        return self.schema.name

    @property
    def description(self) -> str:
        return self.schema.description

    @property
    def param_schema(self) -> dict[str, Any]:
        return self.schema.param_schema

    def __repr__(self) -> str:
        kind = "client" if self.is_client_side else "server"
        return f"Tool({self.name!r}, {kind})"


def tool(fn: ToolHandler) -> Tool:
    """Decorator to define a server-side tool from an async function."""

    # 1. build tool schema by parsing the function
    sig = inspect.signature(fn)
    hints = (
        get_type_hints(fn, include_extras=True)
        if hasattr(fn, "__annotations__")
        else {}
    )

    fields: dict[str, Any] = {}

    for param_name, param in sig.parameters.items():
        param_type = hints.get(param_name, str)
        if param.default is inspect.Parameter.empty:
            fields[param_name] = (param_type, ...)
        else:
            fields[param_name] = (param_type, param.default)

    validator = pydantic.create_model(f"{fn.__name__}_Args", **fields)

    # 2. instantiate the tool
    schema = ToolSchema(
        name=fn.__name__,
        description=inspect.getdoc(fn) or "",
        param_schema=validator.model_json_schema(),
    )

    return Tool(schema=schema, fn=fn, validator=validator)


def client_tool(
    name: str, description: str, args_model: type[pydantic.BaseModel]
) -> Tool:
    """Declare a tool whose output is computed by the browser."""
    schema = ToolSchema(
        name=name,
        description=description,
        param_schema=args_model.model_json_schema(),
    )
    return Tool(schema=schema, fn=None, validator=args_model)


class ToolRegistry(Mapping[str, Tool]):
    """Immutable name -> Tool mapping, defined once per endpoint."""

    def __init__(self, tools: Iterable[Tool] = ()) -> None:
        by_name: dict[str, Tool] = {}
        for t in tools:
            if t.name in by_name:
                raise ValueError(f"Duplicate tool name: {t.name}")
            by_name[t.name] = t
        self._tools = by_name

    def __getitem__(self, name: str) -> Tool:
        return self._tools[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def merge(self, tools: Iterable[Tool]) -> ToolRegistry:
        """Return a new registry holding these tools plus ``tools``."""
        return ToolRegistry([*self._tools.values(), *tools])

    def definitions(self) -> list[Tool]:
        return list(self._tools.values())

    def __repr__(self) -> str:
        return f"ToolRegistry({list(self._tools)!r})"

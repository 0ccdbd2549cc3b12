from . import ai_sdk_ui, anthropic, openai

# Re-export core types for convenient access
from .core.errors import ErrorKind, ProviderError
from .core.llm import LanguageModel
from .core.messages import (
    FilePart,
    Message,
    Part,
    SourcePart,
    TextPart,
    ToolPart,
    make_messages,
)
from .core.runtime import execute_tool, stream_loop
from .core.streams import StreamResult, collect
from .core.structured import generate_enum, stream_object
from .core.tools import Tool, ToolRegistry, client_tool, tool

__all__ = [
    # Types
    "Message",
    "Part",
    "TextPart",
    "FilePart",
    "ToolPart",
    "SourcePart",
    "Tool",
    "ToolRegistry",
    "LanguageModel",
    "StreamResult",
    "ErrorKind",
    "ProviderError",
    # Functions
    "tool",
    "client_tool",
    "stream_loop",
    "execute_tool",
    "collect",
    "make_messages",
    "stream_object",
    "generate_enum",
    # Submodules
    "anthropic",
    "openai",
    "ai_sdk_ui",
]

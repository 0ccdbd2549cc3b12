from .adapter import (
    # Internal → UI stream conversion
    to_ui_message_stream,
    to_sse_stream,
    to_text_stream,
    # UI → Internal message conversion
    to_messages,
)
from .client import ChatClient, ChatRequestError
from .protocol import TEXT_STREAM_HEADERS, UI_MESSAGE_STREAM_HEADERS
from .reducer import StreamProtocolError, UIMessageReducer
from .ui_message import (
    UIFilePart,
    UIMessage,
    UIMessagePart,
    UITextPart,
    UIToolPart,
    user_message,
)

__all__ = [
    "to_ui_message_stream",
    "to_sse_stream",
    "to_text_stream",
    "to_messages",
    "ChatClient",
    "ChatRequestError",
    "StreamProtocolError",
    "UIMessageReducer",
    "UIMessage",
    "UIMessagePart",
    "UITextPart",
    "UIToolPart",
    "UIFilePart",
    "user_message",
    "TEXT_STREAM_HEADERS",
    "UI_MESSAGE_STREAM_HEADERS",
]

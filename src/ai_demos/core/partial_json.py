"""Parse JSON documents that are still being generated.

``parse_partial_json`` turns any prefix of a JSON text into the largest value
that is itself a prefix of the final value. Strings that are still open are
kept (their text can only grow); numbers and literals are held back until a
delimiter proves they are complete, and keys without a value are dropped.
That way a field, once present, never disappears or changes to something
that is not an extension of what was shown before.
"""

from __future__ import annotations

import json
from typing import Any

_MISSING = object()
_WHITESPACE = " \t\n\r"
_NUMBER_CHARS = frozenset("-+0123456789.eE")
_LITERALS: dict[str, Any] = {"true": True, "false": False, "null": None}
_ESCAPES = {
    '"': '"',
    "\\": "\\",
    "/": "/",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
}


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def _at_end(self) -> bool:
        return self.pos >= len(self.text)

    def _skip_ws(self) -> None:
        while not self._at_end() and self.text[self.pos] in _WHITESPACE:
            self.pos += 1

    def value(self) -> tuple[Any, bool]:
        """Return (value, complete); value is _MISSING if nothing usable."""
        self._skip_ws()
        if self._at_end():
            return _MISSING, False
        ch = self.text[self.pos]
        if ch == "{":
            return self._object()
        if ch == "[":
            return self._array()
        if ch == '"':
            return self._string()
        if ch == "-" or ch.isdigit():
            return self._number()
        if ch in "tfn":
            return self._literal()
        raise ValueError(f"Unexpected character {ch!r} at position {self.pos}")

    def _string(self) -> tuple[str, bool]:
        self.pos += 1  # opening quote
        chunks: list[str] = []
        while not self._at_end():
            ch = self.text[self.pos]
            if ch == '"':
                self.pos += 1
                return "".join(chunks), True
            if ch == "\\":
                if self.pos + 1 >= len(self.text):
                    break
                esc = self.text[self.pos + 1]
                if esc == "u":
                    char, width = self._unicode_escape(self.pos)
                    if char is None:
                        break
                    chunks.append(char)
                    self.pos += width
                    continue
                if esc not in _ESCAPES:
                    raise ValueError(f"Invalid escape \\{esc} at position {self.pos}")
                chunks.append(_ESCAPES[esc])
                self.pos += 2
                continue
            chunks.append(ch)
            self.pos += 1
        self.pos = len(self.text)
        return "".join(chunks), False

    def _hex4(self, start: int) -> int | None:
        digits = self.text[start : start + 4]
        if len(digits) < 4:
            return None
        return int(digits, 16)

    def _unicode_escape(self, start: int) -> tuple[str | None, int]:
        """Decode the ``\\uXXXX`` escape at ``start``.

        A high surrogate is only emitted together with its low half, so an
        escape split across chunks yields (None, 0) until it is complete.
        """
        code = self._hex4(start + 2)
        if code is None:
            return None, 0
        if not 0xD800 <= code <= 0xDBFF:
            return chr(code), 6
        tail = self.text[start + 6 : start + 8]
        if len(tail) < 2 and tail == "\\u"[: len(tail)]:
            # The low half may still arrive.
            return None, 0
        if tail != "\\u":
            return chr(code), 6
        low = self._hex4(start + 8)
        if low is None:
            return None, 0
        if 0xDC00 <= low <= 0xDFFF:
            return chr(0x10000 + ((code - 0xD800) << 10) + (low - 0xDC00)), 12
        return chr(code), 6

    def _number(self) -> tuple[Any, bool]:
        start = self.pos
        while not self._at_end() and self.text[self.pos] in _NUMBER_CHARS:
            self.pos += 1
        if self._at_end():
            # The next chunk may still add digits.
            return _MISSING, False
        return json.loads(self.text[start : self.pos]), True

    def _literal(self) -> tuple[Any, bool]:
        rest = self.text[self.pos : self.pos + 5]
        for word, val in _LITERALS.items():
            if rest.startswith(word):
                self.pos += len(word)
                return val, True
            if word.startswith(rest) and self.pos + len(rest) >= len(self.text):
                self.pos = len(self.text)
                return _MISSING, False
        raise ValueError(f"Invalid literal at position {self.pos}")

    def _array(self) -> tuple[list[Any], bool]:
        self.pos += 1  # [
        items: list[Any] = []
        while True:
            self._skip_ws()
            if self._at_end():
                return items, False
            if self.text[self.pos] == "]":
                self.pos += 1
                return items, True
            item, complete = self.value()
            if item is not _MISSING:
                items.append(item)
            if not complete:
                return items, False
            self._skip_ws()
            if self._at_end():
                return items, False
            if self.text[self.pos] == ",":
                self.pos += 1
            elif self.text[self.pos] != "]":
                raise ValueError(f"Expected ',' or ']' at position {self.pos}")

    def _object(self) -> tuple[dict[str, Any], bool]:
        self.pos += 1  # {
        obj: dict[str, Any] = {}
        while True:
            self._skip_ws()
            if self._at_end():
                return obj, False
            ch = self.text[self.pos]
            if ch == "}":
                self.pos += 1
                return obj, True
            if ch != '"':
                raise ValueError(f"Expected object key at position {self.pos}")
            key, key_complete = self._string()
            if not key_complete:
                return obj, False
            self._skip_ws()
            if self._at_end():
                return obj, False
            if self.text[self.pos] != ":":
                raise ValueError(f"Expected ':' at position {self.pos}")
            self.pos += 1
            val, complete = self.value()
            if val is not _MISSING:
                obj[key] = val
            if not complete:
                return obj, False
            self._skip_ws()
            if self._at_end():
                return obj, False
            if self.text[self.pos] == ",":
                self.pos += 1
            elif self.text[self.pos] != "}":
                raise ValueError(f"Expected ',' or '}}' at position {self.pos}")


def parse_partial_json(text: str) -> Any | None:
    """Best-effort value for a JSON prefix, or None when nothing is usable.

    Raises ValueError if ``text`` cannot be the prefix of any JSON document.
    """
    stripped = text.strip()
    # A trailing number may still grow, so only trust json.loads otherwise.
    if stripped and stripped[-1] not in _NUMBER_CHARS:
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass
    value, _ = _Parser(text).value()
    return None if value is _MISSING else value

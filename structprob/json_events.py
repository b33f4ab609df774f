# structprob/json_events.py
"""Byte-offset structural tokenizer for JSON documents.

Walks a UTF-8 JSON buffer and yields one :class:`JsonEvent` per lexical
token (object/array delimiters, property names, scalar values), each
carrying the half-open byte range it occupies in the buffer.  The buffer
is validated as it is read: malformed input raises
:class:`~structprob.errors.MalformedJsonError` at the first offending byte.

String and number literals are located with regular expressions (mirroring
``json.scanner``) and decoded with :func:`json.loads`, so escape handling
and UTF-8 validation follow the standard library exactly.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Union

from .errors import MalformedJsonError

Buffer = Union[bytes, bytearray, memoryview]


class JsonTokenType(str, Enum):
    """Lexical token kinds produced by :func:`iter_json_events`."""

    START_OBJECT = "start_object"
    END_OBJECT = "end_object"
    START_ARRAY = "start_array"
    END_ARRAY = "end_array"
    PROPERTY_NAME = "property_name"
    STRING = "string"
    NUMBER = "number"
    TRUE = "true"
    FALSE = "false"
    NULL = "null"


SCALAR_TYPES = frozenset(
    {
        JsonTokenType.STRING,
        JsonTokenType.NUMBER,
        JsonTokenType.TRUE,
        JsonTokenType.FALSE,
        JsonTokenType.NULL,
    }
)

COMPOSITE_END_TYPES = {
    JsonTokenType.START_OBJECT: JsonTokenType.END_OBJECT,
    JsonTokenType.START_ARRAY: JsonTokenType.END_ARRAY,
}


@dataclass(frozen=True)
class JsonEvent:
    """One lexical token and the bytes it spans in the source buffer."""

    token_type: JsonTokenType
    start: int
    length: int
    value: Any = None

    @property
    def end(self) -> int:
        return self.start + self.length


# ---------------------------------------------------------------------------
# Lexical constants
# ---------------------------------------------------------------------------

_WHITESPACE = b" \t\n\r"
_QUOTE = ord('"')
_COLON = ord(":")
_COMMA = ord(",")
_LBRACE = ord("{")
_RBRACE = ord("}")
_LBRACKET = ord("[")
_RBRACKET = ord("]")

# Raw control characters are not allowed inside JSON strings.
_STRING_RE = re.compile(rb'"(?:[^"\\\x00-\x1f]|\\[^\x00-\x1f])*"')
_NUMBER_RE = re.compile(rb"-?(?:0|[1-9][0-9]*)(?:\.[0-9]+)?(?:[eE][-+]?[0-9]+)?")

_LITERALS = {
    ord("t"): (b"true", JsonTokenType.TRUE, True),
    ord("f"): (b"false", JsonTokenType.FALSE, False),
    ord("n"): (b"null", JsonTokenType.NULL, None),
}


class _State(Enum):
    VALUE = "value"
    VALUE_OR_END = "value_or_end"
    KEY = "key"
    KEY_OR_END = "key_or_end"
    COLON = "colon"
    COMMA_OR_END = "comma_or_end"
    DONE = "done"


# ---------------------------------------------------------------------------
# Scanners
# ---------------------------------------------------------------------------


def _skip_whitespace(view: memoryview, pos: int) -> int:
    size = len(view)
    while pos < size and view[pos] in _WHITESPACE:
        pos += 1
    return pos


def _decode_literal(view: memoryview, start: int, end: int) -> Any:
    try:
        return json.loads(bytes(view[start:end]))
    except ValueError as exc:
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors.
        raise MalformedJsonError(f"Invalid JSON literal: {exc}", start) from exc


def _scan_string(view: memoryview, pos: int) -> tuple[str, int]:
    match = _STRING_RE.match(view, pos)
    if match is None:
        raise MalformedJsonError("Unterminated string or invalid control character", pos)
    return _decode_literal(view, pos, match.end()), match.end()


def _scan_scalar(view: memoryview, pos: int) -> JsonEvent:
    char = view[pos]
    if char == _QUOTE:
        value, end = _scan_string(view, pos)
        return JsonEvent(JsonTokenType.STRING, pos, end - pos, value)

    literal = _LITERALS.get(char)
    if literal is not None:
        text, token_type, value = literal
        if view[pos:pos + len(text)] != text:
            raise MalformedJsonError("Expecting value", pos)
        return JsonEvent(token_type, pos, len(text), value)

    match = _NUMBER_RE.match(view, pos)
    if match is None:
        raise MalformedJsonError("Expecting value", pos)
    end = match.end()
    return JsonEvent(JsonTokenType.NUMBER, pos, end - pos, _decode_literal(view, pos, end))


def _after_value(stack: list[JsonTokenType]) -> _State:
    return _State.COMMA_OR_END if stack else _State.DONE


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def iter_json_events(buffer: Buffer) -> Iterator[JsonEvent]:
    """Yield the lexical events of a UTF-8 JSON document in document order.

    Parameters
    ----------
    buffer:
        The encoded JSON document.  Any bytes-like object is accepted; a
        ``memoryview`` is read in place without copying the whole buffer.

    Yields
    ------
    JsonEvent
        Events in strictly increasing ``start`` order.  A ``PROPERTY_NAME``
        event is always followed by the event that starts its value.

    Raises
    ------
    MalformedJsonError
        On the first syntax error, invalid UTF-8 inside a string, trailing
        content after the top-level value, or an empty document.
    """
    view = buffer if isinstance(buffer, memoryview) else memoryview(buffer)
    size = len(view)
    stack: list[JsonTokenType] = []
    state = _State.VALUE
    pos = 0

    while True:
        pos = _skip_whitespace(view, pos)
        if pos >= size:
            if state is _State.DONE:
                return
            raise MalformedJsonError("Unexpected end of JSON input", pos)

        char = view[pos]

        if state is _State.DONE:
            raise MalformedJsonError("Extra data after top-level value", pos)

        if state is _State.COLON:
            if char != _COLON:
                raise MalformedJsonError("Expecting ':' delimiter", pos)
            pos += 1
            state = _State.VALUE
            continue

        closes_object = char == _RBRACE and state in (_State.KEY_OR_END, _State.COMMA_OR_END)
        closes_array = char == _RBRACKET and state in (_State.VALUE_OR_END, _State.COMMA_OR_END)
        if closes_object or closes_array:
            opener = JsonTokenType.START_OBJECT if closes_object else JsonTokenType.START_ARRAY
            if stack[-1] is not opener:
                raise MalformedJsonError("Mismatched closing delimiter", pos)
            stack.pop()
            yield JsonEvent(COMPOSITE_END_TYPES[opener], pos, 1)
            pos += 1
            state = _after_value(stack)
            continue

        if state is _State.COMMA_OR_END:
            if char != _COMMA:
                raise MalformedJsonError("Expecting ',' delimiter", pos)
            pos += 1
            state = _State.KEY if stack[-1] is JsonTokenType.START_OBJECT else _State.VALUE
            continue

        if state in (_State.KEY, _State.KEY_OR_END):
            if char != _QUOTE:
                raise MalformedJsonError("Expecting property name enclosed in double quotes", pos)
            name, end = _scan_string(view, pos)
            yield JsonEvent(JsonTokenType.PROPERTY_NAME, pos, end - pos, name)
            pos = end
            state = _State.COLON
            continue

        # _State.VALUE or _State.VALUE_OR_END
        if char == _LBRACE:
            stack.append(JsonTokenType.START_OBJECT)
            yield JsonEvent(JsonTokenType.START_OBJECT, pos, 1)
            pos += 1
            state = _State.KEY_OR_END
            continue

        if char == _LBRACKET:
            stack.append(JsonTokenType.START_ARRAY)
            yield JsonEvent(JsonTokenType.START_ARRAY, pos, 1)
            pos += 1
            state = _State.VALUE_OR_END
            continue

        event = _scan_scalar(view, pos)
        yield event
        pos = event.end
        state = _after_value(stack)


def skip_composite(start_event: JsonEvent, events: Iterator[JsonEvent]) -> JsonEvent:
    """Consume ``events`` up to the delimiter closing ``start_event``.

    Returns the matching ``END_OBJECT``/``END_ARRAY`` event.  Nested events
    are consumed without being returned.
    """
    end_type = COMPOSITE_END_TYPES[start_event.token_type]
    depth = 1
    for event in events:
        if event.token_type is start_event.token_type:
            depth += 1
        elif event.token_type is end_type:
            depth -= 1
            if depth == 0:
                return event
    raise MalformedJsonError("Unterminated composite value", start_event.start)

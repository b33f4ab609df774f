# structprob/errors.py
"""Exceptions raised while scoring structured output."""

from __future__ import annotations


class StructprobError(Exception):
    """Base class for all STRUCTPROB failures."""


class MalformedJsonError(StructprobError, ValueError):
    """Raised when the JSON buffer does not tokenize."""

    def __init__(self, message: str, offset: int | None = None):
        if offset is not None:
            message = f"{message} (at byte {offset})"
        super().__init__(message)
        self.offset = offset


class DuplicateFieldError(StructprobError, KeyError):
    """Raised when a field name is scored a second time."""

    def __init__(self, field_name: str):
        super().__init__(field_name)
        self.field_name = field_name

    def __str__(self) -> str:
        return f"Field {self.field_name!r} appears more than once in the document"


class TraceExhaustedError(StructprobError, IndexError):
    """Raised when the log-probability trace ends before the JSON text does."""

    def __init__(self, trace_index: int, required_bytes: int, consumed_bytes: int):
        super().__init__(
            f"Trace exhausted at entry {trace_index}: "
            f"needed {required_bytes} bytes, only {consumed_bytes} available"
        )
        self.trace_index = trace_index
        self.required_bytes = required_bytes
        self.consumed_bytes = consumed_bytes


class TraceDecodeError(StructprobError, ValueError):
    """Raised when a raw log-probability response cannot be decoded."""

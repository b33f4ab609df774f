# structprob/scoring.py
"""
Field-level confidence scoring for JSON produced by a language model.

The scan walks the structural events of the JSON document in lock-step with
the model's per-token log-probability trace.  Every trace entry owns an exact
UTF-8 byte span of the generated text, so a running byte cursor over the
trace can be advanced to the byte offsets the tokenizer reports for each
field value.  Log-probabilities of the entries consumed inside a value's
byte range are summed into that field's score.

Sub-word tokens rarely respect JSON boundaries: one token commonly spans a
closing quote, a comma and the next key.  When the cursor overshoots a
value's start, the overshooting entry is charged to the value it trails
into.  A log-probability of exactly ``0.0`` is treated as "no signal" and
never enters a sum or a count.

Example
-------
    >>> trace = [TokenLogProb(-0.1, b'{"a":'), TokenLogProb(-0.2, b'"x"}')]
    >>> round(get_field_probabilities('{"a":"x"}', trace)["a"].joint_probability, 4)
    0.8187
"""

from __future__ import annotations

import math
from contextlib import closing
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict

from .errors import DuplicateFieldError, TraceExhaustedError
from .json_events import (
    COMPOSITE_END_TYPES,
    SCALAR_TYPES,
    JsonEvent,
    JsonTokenType,
    iter_json_events,
    skip_composite,
)
from .utils.logging import (
    get_logger,
    log_field_alignment,
    log_scoring_complete,
    log_scoring_start,
)

_logger = get_logger(__name__)

SENTINEL_LOG_PROBABILITY = 0.0
"""Log-probability value meaning "no signal available for this token"."""


# ---------------------------------------------------------------------------
# Data shapes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TokenLogProb:
    """One sub-word token of the generated text and its log-probability."""

    log_probability: float
    token_bytes: bytes

    @property
    def byte_length(self) -> int:
        return len(self.token_bytes)

    @property
    def has_signal(self) -> bool:
        return self.log_probability != SENTINEL_LOG_PROBABILITY


class FieldProbability(BaseModel):
    """Confidence of a single JSON field's value."""

    model_config = ConfigDict(frozen=True)

    joint_probability: float
    average_probability: float


@dataclass(frozen=True)
class CursorState:
    """Position of the scan within the trace.

    ``previous_log_probability`` is the value of the most recently consumed
    entry; it is carried into the next field when that entry straddles the
    field's start.  ``previous_charged`` marks an entry already counted inside
    a value, which is never carried a second time.
    """

    trace_index: int = 0
    consumed_bytes: int = 0
    previous_log_probability: float = SENTINEL_LOG_PROBABILITY
    previous_charged: bool = False

    def consume(self, entry: TokenLogProb, charged: bool = False) -> "CursorState":
        return CursorState(
            trace_index=self.trace_index + 1,
            consumed_bytes=self.consumed_bytes + entry.byte_length,
            previous_log_probability=entry.log_probability,
            previous_charged=charged,
        )


@dataclass(frozen=True)
class FieldSpan:
    """Byte range of one named value in the JSON buffer."""

    name: str
    token_type: JsonTokenType
    start: int
    length: int

    @property
    def end(self) -> int:
        return self.start + self.length


@dataclass(frozen=True)
class ValueScore:
    """Accumulated log-probability of the entries attributed to one value."""

    log_sum: float = 0.0
    count: int = 0
    aligned: bool = True

    def add(self, log_probability: float) -> "ValueScore":
        if log_probability == SENTINEL_LOG_PROBABILITY:
            return self
        return ValueScore(self.log_sum + log_probability, self.count + 1, self.aligned)

    @property
    def joint_probability(self) -> float:
        return math.exp(self.log_sum)

    @property
    def average_probability(self) -> float:
        if self.count == 0:
            return 0.0
        return math.exp(self.log_sum / self.count)

    def to_field_probability(self) -> FieldProbability:
        return FieldProbability(
            joint_probability=self.joint_probability,
            average_probability=self.average_probability,
        )


@dataclass(frozen=True)
class ScoredField:
    """A field span, its score, and the cursor after scoring it."""

    span: FieldSpan
    score: ValueScore
    state: CursorState


# ---------------------------------------------------------------------------
# Scan steps
# ---------------------------------------------------------------------------


def _consume_next(
    state: CursorState,
    logprobs: Sequence[TokenLogProb],
    required_bytes: int,
    charged: bool = False,
) -> tuple[CursorState, TokenLogProb]:
    if state.trace_index >= len(logprobs):
        raise TraceExhaustedError(state.trace_index, required_bytes, state.consumed_bytes)
    entry = logprobs[state.trace_index]
    return state.consume(entry, charged), entry


def advance_to(
    state: CursorState,
    logprobs: Sequence[TokenLogProb],
    offset: int,
) -> CursorState:
    """Consume trace entries until at least ``offset`` bytes are covered.

    The returned cursor sits exactly on ``offset`` (aligned) or past it when
    the last consumed entry straddles the offset.  A cursor already at or past
    ``offset`` is returned unchanged.
    """
    while state.consumed_bytes < offset:
        state, _ = _consume_next(state, logprobs, offset)
    return state


def score_value(
    state: CursorState,
    logprobs: Sequence[TokenLogProb],
    start: int,
    length: int,
) -> tuple[CursorState, ValueScore]:
    """Score the value occupying ``[start, start + length)``.

    Returns the cursor after the value together with the accumulated score.
    """
    state = advance_to(state, logprobs, start)

    if state.consumed_bytes == start:
        score = ValueScore(aligned=True)
    else:
        score = ValueScore(aligned=False)
        # A straddling entry already counted in the previous value stays there.
        if not state.previous_charged:
            score = score.add(state.previous_log_probability)

    end = start + length
    while state.consumed_bytes < end:
        state, entry = _consume_next(state, logprobs, end, charged=True)
        score = score.add(entry.log_probability)

    return state, score


def iter_field_spans(events: Iterator[JsonEvent]) -> Iterator[FieldSpan]:
    """Yield the byte span of every value that directly follows a property name.

    Object and array values are taken as one span; property names nested
    inside them are consumed without being reported.
    """
    for event in events:
        if event.token_type is not JsonTokenType.PROPERTY_NAME:
            continue

        value = next(events)
        if value.token_type in SCALAR_TYPES:
            end = value.end
        elif value.token_type in COMPOSITE_END_TYPES:
            end = skip_composite(value, events).end
        else:
            continue

        yield FieldSpan(event.value, value.token_type, value.start, end - value.start)


def iter_field_scores(
    json_bytes: Union[bytes, bytearray, memoryview],
    logprobs: Sequence[TokenLogProb],
) -> Iterator[ScoredField]:
    """Score each field of ``json_bytes`` in document order."""
    state = CursorState()
    with closing(iter_json_events(json_bytes)) as events:
        for span in iter_field_spans(events):
            state, score = score_value(state, logprobs, span.start, span.length)
            log_field_alignment(
                _logger, span.name, span.start, span.end, score.aligned, score.count
            )
            yield ScoredField(span, score, state)


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------


def get_field_probabilities(
    json_text: Union[str, bytes],
    logprobs: Sequence[TokenLogProb],
    field_probabilities: Optional[dict[str, FieldProbability]] = None,
) -> dict[str, FieldProbability]:
    """
    Compute the joint and average probability of every named field.

    Parameters
    ----------
    json_text:
        The JSON document, as text or as its UTF-8 encoding.  Its byte offsets
        must line up with the bytes reconstructed from ``logprobs``.
    logprobs:
        The model's trace, in emission order.
    field_probabilities:
        Optional mapping to fill.  It is only updated once the whole document
        has been scored, so a failure leaves it untouched.

    Returns
    -------
    dict[str, FieldProbability]
        ``field_probabilities`` when given, otherwise a new dict.

    Raises
    ------
    MalformedJsonError
        The JSON text does not tokenize.
    DuplicateFieldError
        A field name occurs twice, at any nesting depth.
    TraceExhaustedError
        The trace ends before the last field value does.
    """
    if field_probabilities is None:
        field_probabilities = {}

    json_bytes = json_text.encode("utf-8") if isinstance(json_text, str) else json_text
    log_scoring_start(_logger, len(json_bytes), len(logprobs))

    scored: dict[str, FieldProbability] = {}
    state = CursorState()
    with memoryview(json_bytes) as view, closing(iter_field_scores(view, logprobs)) as fields:
        for field in fields:
            name = field.span.name
            if name in scored or name in field_probabilities:
                raise DuplicateFieldError(name)
            scored[name] = field.score.to_field_probability()
            state = field.state

    field_probabilities.update(scored)
    log_scoring_complete(_logger, len(scored), state.consumed_bytes, state.trace_index)
    return field_probabilities

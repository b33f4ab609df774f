"""
STRUCTPROB - field-level confidence for structured language-model output

Given a JSON document generated by a model and the per-token log-probability
trace of that generation, STRUCTPROB attributes each token's log-probability
to the JSON field whose value it falls inside and reports a joint and an
average probability per field.

Main Components:
    - structprob.scoring: the token cursor and field aggregator
    - structprob.json_events: byte-offset structural JSON tokenizer
    - structprob.decoding: raw log-probability report decoding
    - structprob.cli: ``structprob`` command-line harness
"""

__version__ = "1.0.0"

from .errors import (
    DuplicateFieldError,
    MalformedJsonError,
    StructprobError,
    TraceDecodeError,
    TraceExhaustedError,
)
from .scoring import FieldProbability, TokenLogProb, get_field_probabilities

__all__ = [
    "__version__",
    "get_field_probabilities",
    "FieldProbability",
    "TokenLogProb",
    "StructprobError",
    "MalformedJsonError",
    "DuplicateFieldError",
    "TraceExhaustedError",
    "TraceDecodeError",
]

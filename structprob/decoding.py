# structprob/decoding.py
"""Decode raw model log-probability reports into :class:`TokenLogProb` traces.

Two report shapes are supported:

- the response-file layout, where each token carries a base64 encoded UTF-8
  payload (``{"LogProbability": -0.1, "Utf8Bytes": "eyI=", "Token": "{\""}``);
- OpenAI chat-completion ``logprobs.content`` entries, where each token
  carries a list of byte values (``{"token": "{\"", "logprob": -0.1,
  "bytes": [123, 34]}``).
"""

from __future__ import annotations

import base64
import binascii
import json
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .config import StructprobConfig, get_config
from .errors import TraceDecodeError
from .scoring import TokenLogProb
from .utils.logging import get_logger

_logger = get_logger(__name__)


class TokenLogProbRecord(BaseModel):
    """One token of a raw log-probability report."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    log_probability: float = Field(alias="LogProbability")
    utf8_bytes: str = Field(alias="Utf8Bytes", description="Base64 encoded UTF-8 bytes")
    token: Optional[str] = Field(default=None, alias="Token")

    def decoded_length(self) -> int:
        """Byte length of the payload, computed from the base64 text alone."""
        encoded = self.utf8_bytes
        pad_count = len(encoded) - len(encoded.rstrip("="))
        return len(encoded) * 3 // 4 - pad_count

    def decode_bytes(self) -> bytes:
        try:
            return base64.b64decode(self.utf8_bytes, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise TraceDecodeError(
                f"Invalid base64 payload {self.utf8_bytes!r} for token {self.token!r}"
            ) from exc

    def to_token_logprob(self) -> TokenLogProb:
        return TokenLogProb(self.log_probability, self.decode_bytes())


class LLMResponse(BaseModel):
    """Generated content together with its per-token log-probability report."""

    model_config = ConfigDict(populate_by_name=True)

    content: str = Field(alias="Content")
    content_token_log_probabilities: list[TokenLogProbRecord] = Field(
        default_factory=list, alias="ContentTokenLogProbabilities"
    )

    def trace(self) -> list[TokenLogProb]:
        return decode_token_logprobs(self.content_token_log_probabilities)


def decode_token_logprobs(records: Iterable[TokenLogProbRecord]) -> list[TokenLogProb]:
    """Decode every record's base64 payload, preserving emission order."""
    return [record.to_token_logprob() for record in records]


def parse_response(
    payload: Any,
    config: Optional[StructprobConfig] = None,
) -> LLMResponse:
    """Build an :class:`LLMResponse` from a decoded JSON payload.

    Key names are taken from ``config`` so reports with a different field
    naming can be read without code changes.
    """
    cfg = config or get_config()
    if not isinstance(payload, dict):
        raise TraceDecodeError(
            f"Response must be a JSON object, got {type(payload).__name__}"
        )

    try:
        records = [
            {
                "LogProbability": item[cfg.logprob_key],
                "Utf8Bytes": item[cfg.bytes_key],
                "Token": item.get(cfg.token_key),
            }
            for item in payload[cfg.logprobs_key]
        ]
        return LLMResponse(Content=payload[cfg.content_key], ContentTokenLogProbabilities=records)
    except KeyError as exc:
        raise TraceDecodeError(f"Response is missing key {exc}") from exc
    except (AttributeError, TypeError) as exc:
        raise TraceDecodeError(f"Malformed log-probability entry: {exc}") from exc
    except ValidationError as exc:
        raise TraceDecodeError(f"Invalid response: {exc}") from exc


def load_response(
    path: Optional[Path] = None,
    config: Optional[StructprobConfig] = None,
) -> LLMResponse:
    """Read and parse a response file (defaults to ``config.response_file``)."""
    cfg = config or get_config()
    path = Path(path) if path is not None else cfg.response_file
    _logger.info(f"Loading response file: {path}")

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise TraceDecodeError(f"Cannot read response file {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise TraceDecodeError(f"Response file {path} is not valid JSON: {exc}") from exc

    response = parse_response(payload, cfg)
    _logger.debug(
        f"Loaded {len(response.content_token_log_probabilities)} token(s), "
        f"content length {len(response.content)} chars"
    )
    return response


def _entry_value(entry: Any, key: str) -> Any:
    if isinstance(entry, dict):
        return entry.get(key)
    return getattr(entry, key, None)


def from_openai_logprobs(entries: Iterable[Any]) -> list[TokenLogProb]:
    """Convert OpenAI-style ``logprobs.content`` entries into a trace.

    Entries may be dicts or SDK objects exposing ``token``, ``logprob`` and
    ``bytes``.  When ``bytes`` is missing the token text is UTF-8 encoded.
    """
    trace: list[TokenLogProb] = []
    for index, entry in enumerate(entries):
        logprob = _entry_value(entry, "logprob")
        if logprob is None:
            raise TraceDecodeError(f"Entry {index} has no logprob")

        raw_bytes = _entry_value(entry, "bytes")
        if raw_bytes is not None:
            try:
                token_bytes = bytes(raw_bytes)
            except (TypeError, ValueError) as exc:
                raise TraceDecodeError(f"Entry {index} has invalid bytes: {exc}") from exc
        else:
            token = _entry_value(entry, "token")
            if token is None:
                raise TraceDecodeError(f"Entry {index} has neither bytes nor token text")
            token_bytes = token.encode("utf-8")

        trace.append(TokenLogProb(float(logprob), token_bytes))
    return trace


def reconstruct_text(records: Iterable[TokenLogProbRecord]) -> str:
    """Join the display text of each record."""
    return "".join(record.token or "" for record in records)


def reconstruct_bytes(trace: Sequence[TokenLogProb]) -> bytes:
    """Join the bytes of each trace entry, reproducing the generated text."""
    return b"".join(entry.token_bytes for entry in trace)

"""Shared pytest configuration for STRUCTPROB tests."""

import os
import tempfile

import pytest

# CLI runs start a logging session; keep session logs out of $HOME.
os.environ.setdefault("STRUCTPROB_LOG_DIR", tempfile.mkdtemp(prefix="structprob-logs-"))


@pytest.fixture(autouse=True)
def _fresh_config():
    """Drop the cached config so env overrides from one test do not leak."""
    from structprob.config import get_config

    get_config.cache_clear()
    yield
    get_config.cache_clear()


@pytest.fixture
def per_byte_trace():
    """Build a trace with one entry per UTF-8 byte of a text.

    ``logprob_for(byte)`` picks the log-probability of each entry.
    """
    from structprob.scoring import TokenLogProb

    def build(text, logprob_for):
        return [TokenLogProb(logprob_for(b), bytes([b])) for b in text.encode("utf-8")]

    return build

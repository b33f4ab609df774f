# structprob/config.py
"""
STRUCTPROB Configuration: single source of truth via Pydantic Settings.

Resolution order: CLI flags > env vars (STRUCTPROB_*) > .env file > defaults.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StructprobConfig(BaseSettings):
    """Central configuration for STRUCTPROB."""

    model_config = SettingsConfigDict(
        env_prefix="STRUCTPROB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Response file layout ---
    response_file: Path = Path("llmresponse.json")
    content_key: str = "Content"
    logprobs_key: str = "ContentTokenLogProbabilities"
    logprob_key: str = "LogProbability"
    bytes_key: str = "Utf8Bytes"
    token_key: str = "Token"

    # --- Display ---
    display_precision: int = Field(default=6, ge=0, le=17)

    # --- Paths ---
    home_dir: Path = Field(default_factory=lambda: Path.home() / ".structprob")

    @property
    def log_dir(self) -> Path:
        return self.home_dir / "logs"


@lru_cache(maxsize=1)
def get_config() -> StructprobConfig:
    """Return the global config singleton."""
    return StructprobConfig()

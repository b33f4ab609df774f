"""
STRUCTPROB Logging Utilities - Session Debug & Audit Logging

================================================================================
STRUCTPROB: field-level confidence for structured LLM output
================================================================================

Overview:
---------
Centralised logging configuration for STRUCTPROB scoring runs.  Provides
session-based file logging with unique identifiers, configurable verbosity,
and structured output for debugging how trace entries were aligned with JSON
field values.

Log Location:
-------------
- Default: ~/.structprob/logs/
- Each CLI run creates a timestamped log file with session ID
- A symlink 'structprob.log' always points to the latest session
- Can be overridden via STRUCTPROB_LOG_DIR environment variable

Log File Format:
----------------
- structprob_YYYYMMDD_HHMMSS_<session_id>.log  (per-session files)
- structprob.log (symlink to latest)

Log Levels:
-----------
- DEBUG: Per-field alignment decisions, byte ranges, token counts
- INFO: Scoring start/finish summaries
- WARNING: Trace/content mismatches reported by the CLI
- ERROR: Scoring failures

Usage:
------
    from structprob.utils.logging import get_logger, setup_logging

    # Call once at startup (CLI entry point)
    log_file = setup_logging(level="DEBUG")

    # Get logger in any module
    logger = get_logger(__name__)
    logger.info("Scoring response...")
"""

from __future__ import annotations

import logging
import os
import sys
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

# ============================================================================
# Constants
# ============================================================================

DEFAULT_LOG_DIR = Path.home() / ".structprob" / "logs"
DEFAULT_LOG_LEVEL = "INFO"
SYMLINK_NAME = "structprob.log"

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(session_id)s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# File records also carry line numbers
FILE_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(session_id)s | %(name)s:%(lineno)d | %(message)s"

_log_file_path: Optional[Path] = None
_session_id: Optional[str] = None

# Library use stays silent until a session is started (the CLI starts one).
logging.getLogger("structprob").addHandler(logging.NullHandler())


# ============================================================================
# Session ID Filter - Adds session_id to all log records
# ============================================================================

class SessionIdFilter(logging.Filter):
    """Add session_id to all log records."""

    def __init__(self, session_id: str):
        super().__init__()
        self.session_id = session_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = self.session_id  # type: ignore[attr-defined]
        return True


class SessionFormatter(logging.Formatter):
    """Formatter that adds session_id, defaulting to 'N/A' if not present."""

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "session_id"):
            record.session_id = _session_id or "N/A"  # type: ignore[attr-defined]
        return super().format(record)


# ============================================================================
# Setup Functions
# ============================================================================

def generate_session_id() -> str:
    """Generate a short unique session ID (6 characters)."""
    return uuid.uuid4().hex[:6]


def get_log_directory() -> Path:
    """Get the log directory.

    STRUCTPROB_LOG_DIR wins; otherwise logs live under the configured
    ``home_dir``, falling back to ~/.structprob/logs.
    """
    env_log_dir = os.getenv("STRUCTPROB_LOG_DIR")
    if env_log_dir:
        return Path(env_log_dir)
    try:
        from structprob.config import get_config

        return get_config().log_dir
    except Exception:
        return DEFAULT_LOG_DIR


def generate_log_filename(session_id: str) -> str:
    """Generate a timestamped log filename with session ID."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"structprob_{timestamp}_{session_id}.log"


def setup_logging(
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    console_output: bool = False,
    quiet: bool = False,
) -> Path:
    """
    Initialise STRUCTPROB logging with session-based file and optional console output.

    Each call creates a new timestamped log file with a unique session ID.
    A symlink 'structprob.log' is updated to point to the latest log file.

    Parameters
    ----------
    level : str, optional
        Log level: DEBUG, INFO, WARNING, ERROR. Defaults to INFO.
        Can also be set via STRUCTPROB_LOG_LEVEL environment variable.
    log_dir : Path, optional
        Directory for log files. Defaults to ~/.structprob/logs/
    console_output : bool
        If True, also log to console (stderr). Default False.
    quiet : bool
        If True, suppress console output entirely. Default False.

    Returns
    -------
    Path
        Path to the log file being written to.
    """
    global _log_file_path, _session_id

    _session_id = generate_session_id()

    if level is None:
        level = os.getenv("STRUCTPROB_LOG_LEVEL", DEFAULT_LOG_LEVEL)
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_dir is None:
        log_dir = get_log_directory()
    log_dir.mkdir(parents=True, exist_ok=True)

    log_file = log_dir / generate_log_filename(_session_id)
    _log_file_path = log_file

    root_logger = logging.getLogger("structprob")

    # Drop handlers from a previous session (and close their files)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    for f in root_logger.filters[:]:
        root_logger.removeFilter(f)

    root_logger.setLevel(log_level)
    root_logger.addFilter(SessionIdFilter(_session_id))

    # No rotation - each session gets its own file
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(log_level)
    file_handler.setFormatter(SessionFormatter(FILE_LOG_FORMAT, LOG_DATE_FORMAT))
    root_logger.addHandler(file_handler)

    if console_output and not quiet:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(log_level)
        console_handler.setFormatter(SessionFormatter(LOG_FORMAT, LOG_DATE_FORMAT))
        root_logger.addHandler(console_handler)

    root_logger.propagate = False

    symlink_path = log_dir / SYMLINK_NAME
    try:
        if symlink_path.is_symlink() or symlink_path.exists():
            symlink_path.unlink()
        symlink_path.symlink_to(log_file.name)
    except OSError:
        # Symlinks may be unavailable (e.g., Windows without admin)
        pass

    root_logger.info("=" * 80)
    root_logger.info("STRUCTPROB Logging Session Started")
    root_logger.info(f"  Session ID: {_session_id}")
    root_logger.info(f"  Log file: {log_file}")
    root_logger.info(f"  Log level: {level.upper()}")
    root_logger.info("=" * 80)

    return log_file


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance for the given module name.

    Nothing is written to disk until :func:`setup_logging` runs.

    Parameters
    ----------
    name : str
        Module name (typically __name__)

    Returns
    -------
    logging.Logger
        Logger instance under the ``structprob`` namespace
    """
    if name.startswith("structprob"):
        return logging.getLogger(name)
    return logging.getLogger(f"structprob.{name}")


def get_current_log_file() -> Optional[Path]:
    """Return the path to the current log file, if logging is initialised."""
    return _log_file_path


def get_session_id() -> Optional[str]:
    """Return the current session ID, if logging is initialised."""
    return _session_id


# ============================================================================
# Logging Helper Functions - Structured Logging
# ============================================================================

def log_scoring_start(
    logger: logging.Logger,
    json_byte_length: int,
    trace_length: int,
) -> None:
    """Log the start of a field scoring scan."""
    logger.info("-" * 60)
    logger.info("FIELD SCORING START")
    logger.info(f"  JSON bytes: {json_byte_length}")
    logger.info(f"  Trace entries: {trace_length}")
    logger.info("-" * 60)


def log_field_alignment(
    logger: logging.Logger,
    field_name: str,
    start: int,
    end: int,
    aligned: bool,
    token_count: int,
) -> None:
    """Log how a field's value range lined up with the trace."""
    alignment = "aligned" if aligned else "straddling"
    logger.debug(
        f"Field {field_name!r} bytes [{start}, {end}) | {alignment} | "
        f"{token_count} scored token(s)"
    )


def log_scoring_complete(
    logger: logging.Logger,
    fields_scored: int,
    consumed_bytes: int,
    trace_index: int,
) -> None:
    """Log scoring completion summary."""
    logger.info(
        f"FIELD SCORING SUCCEEDED | fields: {fields_scored} | "
        f"bytes consumed: {consumed_bytes} | trace entries read: {trace_index}"
    )


def log_text_content(
    logger: logging.Logger,
    source: str,
    text_content: str,
    truncate_at: int = 1000,
) -> None:
    """Log text content (for debugging trace/content mismatches)."""
    if len(text_content) > truncate_at:
        display_text = text_content[:truncate_at] + f"... [TRUNCATED, {len(text_content)} chars total]"
    else:
        display_text = text_content

    logger.debug(f"TEXT CONTENT (from {source}, {len(text_content)} chars):\n{display_text}")

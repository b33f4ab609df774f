"""
STRUCTPROB Utilities Package - Cross-Cutting Helpers

Helpers shared by the scoring core and the CLI.  Kept free of heavier
imports so the core can be imported without the terminal stack.
"""

from .logging import (
    setup_logging,
    get_logger,
    get_current_log_file,
    get_session_id,
    log_scoring_start,
    log_field_alignment,
    log_scoring_complete,
    log_text_content,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "get_current_log_file",
    "get_session_id",
    "log_scoring_start",
    "log_field_alignment",
    "log_scoring_complete",
    "log_text_content",
]

"""Structured logging setup for lexicard.

Every module logs through ``get_logger(__name__)``. Events are snake_case
names with keyword context, so one task can be followed through the log
by its ``task_id`` (batch requests carry ``request_id`` values of the form
``<task_id>:<batch_index>``).
"""

import logging
import structlog
from pathlib import Path
from typing import Any
import os


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def configure_logging(log_dir: Path | None = None) -> None:
    """
    Send JSON log lines to lexicard.log under log_dir.

    The default directory is ~/.cache/lexicard/logs. LEXICARD_LOG_LEVEL picks
    the threshold (unknown values fall back to INFO):

    - DEBUG: llm_request_payload, llm_response_content, response_repaired_body
    - INFO: task_submitted, task_planned, task_batch_completed, task_completed
    - WARNING: llm_request_retry, task_batch_failed, enrichment_item_invalid
    - ERROR: task_failed, llm_authentication_failed, atomic_write_failed

    Example:
        LEXICARD_LOG_LEVEL=DEBUG lexicard add words.txt
        jq 'select(.task_id == "...")' ~/.cache/lexicard/logs/lexicard.log
    """
    if log_dir is None:
        log_dir = Path.home() / ".cache" / "lexicard" / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    level_name = os.environ.get("LEXICARD_LOG_LEVEL", "INFO").upper()
    if level_name not in LOG_LEVELS:
        level_name = "INFO"

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level_name)),
        context_class=dict,
        logger_factory=structlog.WriteLoggerFactory(
            file=open(log_dir / "lexicard.log", "a", encoding="utf-8")
        ),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Return a structlog logger; bind task context with ``.bind(task_id=...)``."""
    return structlog.get_logger(name)

"""Structured log helpers shared by the pipeline, the ledger and spell setup.

Event names follow ``<stage>.<event>``. Rejections always carry the code and
message of the RollError that ended the run.
"""

from __future__ import annotations

from typing import Any

import structlog

from Rollsmith.metrics import inc_counter
from Rollsmith.results import ErrorCode, RollError

_log = structlog.get_logger()


def log_event(stage: str, event: str, **fields: Any) -> None:
    _log.info(f"{stage}.{event}", **fields)


def log_rejection(stage: str, error: RollError, **fields: Any) -> None:
    """Warn with ``<stage>.rejected``; the error's detail is merged into the fields."""
    _log.warning(
        f"{stage}.rejected",
        reason=error.code.value,
        message=error.message,
        **{**dict(error.detail), **fields},
    )


def reject(stage: str, code: ErrorCode, message: str, **detail: Any) -> RollError:
    """Build a RollError, count it under ``<stage>.reject.<code>`` and log it."""
    error = RollError(code=code, message=message, detail=detail)
    inc_counter(f"{stage}.reject.{code.value}")
    log_rejection(stage, error)
    return error

"""Structured events for the coordination pipeline.

Three shapes of record, all routed through loguru extras:
- ``log_event``: a named event with flat fields
- ``log_stage_event``: a pipeline stage starting, succeeding or failing
- ``timing``: wall time of a block, with its outcome
"""

import time
from collections.abc import Iterator
from contextlib import contextmanager
from enum import StrEnum
from typing import Literal

from loguru import logger

EventValue = str | int | float | bool | None
StageStatus = Literal["start", "success", "fail"]

_STAGE_STATUSES: frozenset[str] = frozenset({"start", "success", "fail"})


class CoordinatorStage(StrEnum):
    VALIDATE = "validate"
    ENRICH = "enrich"
    GATHER = "gather"
    MERGE = "merge"
    RESOLVE = "resolve"
    SCALE = "scale"
    FALLBACK = "fallback"


def log_event(event: str, level: str = "INFO", **fields: EventValue) -> None:
    """Emit ``event`` with ``fields`` as structured extras.

    Events in use: ``expert_gather_completed``, ``plan_cache_hit``,
    ``plan_cache_miss``, ``fallback_tier_used``, ``coordinator_stage`` and
    ``coordinator_timing``.
    """
    logger.bind(event=event, **fields).log(level, event)


def log_stage_event(
    stage: CoordinatorStage,
    status: StageStatus,
    meta: dict[str, EventValue] | None = None,
) -> None:
    """Record a stage transition; failures are logged at WARNING.

    Raises:
        ValueError: If status is not start, success or fail
    """
    if status not in _STAGE_STATUSES:
        raise ValueError(f"Unknown stage status {status!r}; expected one of {sorted(_STAGE_STATUSES)}")
    level = "WARNING" if status == "fail" else "DEBUG" if status == "start" else "INFO"
    log_event("coordinator_stage", level, stage=stage.value, status=status, **(meta or {}))


@contextmanager
def timing(metric: str) -> Iterator[None]:
    """Log how long the block took and whether it raised."""
    started = time.monotonic()
    outcome = "ok"
    try:
        yield
    except BaseException:
        outcome = "error"
        raise
    finally:
        log_event(
            "coordinator_timing",
            "DEBUG",
            metric=metric,
            outcome=outcome,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )

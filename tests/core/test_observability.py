"""Tests for structured pipeline events."""

import pytest
from loguru import logger

from trainer.core.observability import CoordinatorStage, log_event, log_stage_event, timing


@pytest.fixture
def records():
    captured: list[dict] = []
    handler_id = logger.add(lambda message: captured.append(message.record), level="DEBUG")
    yield captured
    logger.remove(handler_id)


def test_log_event_binds_fields(records):
    log_event("plan_cache_hit", cache_key="abc")

    record = records[-1]
    assert record["message"] == "plan_cache_hit"
    assert record["extra"]["cache_key"] == "abc"
    assert record["level"].name == "INFO"


def test_stage_failure_logs_warning(records):
    log_stage_event(CoordinatorStage.MERGE, "fail", {"error_type": "ValueError"})

    record = records[-1]
    assert record["level"].name == "WARNING"
    assert record["extra"]["stage"] == "merge"
    assert record["extra"]["error_type"] == "ValueError"


def test_unknown_stage_status():
    with pytest.raises(ValueError):
        log_stage_event(CoordinatorStage.GATHER, "done")


def test_timing_records_outcome(records):
    with pytest.raises(RuntimeError), timing("coordinator.plan_today"):
        raise RuntimeError("boom")

    record = records[-1]
    assert record["extra"]["metric"] == "coordinator.plan_today"
    assert record["extra"]["outcome"] == "error"
    assert record["extra"]["duration_ms"] >= 0

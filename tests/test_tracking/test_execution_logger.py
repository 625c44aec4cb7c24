"""Tests for tool execution logging and usage analytics."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from agent_runtime.errors import RepositoryError
from agent_runtime.models.logs import ExecutionLogFilter, ExecutionLogRecord, PerformanceClass
from agent_runtime.models.tools import ToolContext, ToolExecutionResult
from agent_runtime.storage.sqlite import SQLiteStore
from agent_runtime.tracking import execution_logger
from agent_runtime.tracking.execution_logger import (
    ExecutionLogger,
    build_usage_analytics,
    classify_category,
    classify_performance,
    recovery_suggestions,
)

T0 = datetime(2025, 3, 10, 9, 0, tzinfo=UTC)


def _ok(ms: int = 10) -> ToolExecutionResult:
    return ToolExecutionResult(success=True, data={}, message="ok", execution_time_ms=ms)


def _failed(error: str = "Task not found", ms: int = 10) -> ToolExecutionResult:
    return ToolExecutionResult(success=False, message="failed", error=error, execution_time_ms=ms)


def _record(session: str, tool: str, minutes: int, success: bool = True, ms: int = 10):
    return ExecutionLogRecord(
        session_id=session,
        tool_name=tool,
        parameters="{}",
        result="{}",
        context="{}",
        execution_time_ms=ms,
        success=success,
        error=None if success else "Timer already active",
        performance_class=classify_performance(ms),
        tool_category=classify_category(tool),
        timestamp=T0 + timedelta(minutes=minutes),
    )


@pytest.mark.parametrize(
    ("ms", "expected"),
    [
        (0, PerformanceClass.FAST),
        (100, PerformanceClass.FAST),
        (101, PerformanceClass.NORMAL),
        (1000, PerformanceClass.NORMAL),
        (1001, PerformanceClass.SLOW),
        (5000, PerformanceClass.SLOW),
        (5001, PerformanceClass.VERY_SLOW),
    ],
)
def test_classify_performance(ms: int, expected: PerformanceClass) -> None:
    assert classify_performance(ms) == expected


@pytest.mark.parametrize(
    ("tool", "category"),
    [
        ("create_task", "task_management"),
        ("stop_timer", "time_tracking"),
        ("productivity_analytics", "analytics"),
        ("get_weather", "data_retrieval"),
        ("delete_note", "data_modification"),
        ("ping", "general"),
    ],
)
def test_classify_category(tool: str, category: str) -> None:
    assert classify_category(tool) == category


def test_recovery_suggestions() -> None:
    assert recovery_suggestions("update_task", _failed(), {"task_id": "x"}) == [
        "Check if the referenced resource exists",
        "Verify the ID or name parameter is correct",
        "Verify the task ID exists",
        "Check if the task is not already completed",
    ]
    assert recovery_suggestions("create_task", _failed("boom"), {}) == [
        "Ensure task title is provided",
        "Try simplifying the task description",
    ]


@pytest.mark.asyncio
async def test_log_execution_persists_records(store: SQLiteStore) -> None:
    logger = ExecutionLogger(store, "s1")
    ok = await logger.log_execution("get_tasks", {"limit": 5}, None, _ok(), ToolContext())
    failed = await logger.log_execution(
        "update_task", {"task_id": "x"}, None, _failed(ms=1500), ToolContext(), user_id="u1"
    )

    assert ok.recovery_suggestions is None
    assert ok.metadata["success_class"] == "success"
    assert failed.performance_class == PerformanceClass.SLOW
    assert failed.recovery_suggestions[0] == "Check if the referenced resource exists"

    stored = await logger.get_execution_logs(ExecutionLogFilter(session_id="s1"))
    assert [r.tool_name for r in stored] == ["get_tasks", "update_task"]
    assert stored[1].user_id == "u1"
    assert stored[0].parameters == '{"limit": 5}'

    stats = await logger.get_session_statistics()
    assert stats.total_executions == 2

    snapshot = await logger.snapshot()
    assert snapshot["success_rate"] == 50.0
    assert snapshot["error_patterns"] == {"Task not found": 1}


class _BrokenStore(SQLiteStore):
    async def create_detailed_tool_execution_log(self, record: ExecutionLogRecord) -> None:
        raise RepositoryError("disk full")


@pytest.mark.asyncio
async def test_log_failures_do_not_propagate(tmp_path) -> None:
    broken = _BrokenStore(tmp_path / "broken.db")
    await broken.initialize()
    try:
        logger = ExecutionLogger(broken, "s1")
        record = await logger.log_execution("get_tasks", {}, None, _ok(), ToolContext())
        assert record.tool_name == "get_tasks"
        assert logger.tracker.total_executions == 1
    finally:
        await broken.close()


@pytest.mark.asyncio
async def test_analytics_generated_periodically(
    store: SQLiteStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(execution_logger, "ANALYTICS_EVERY", 2)
    logger = ExecutionLogger(store, "s1")
    await logger.log_execution("get_tasks", {}, None, _ok(), ToolContext())
    assert await store.list_tool_usage_analytics() == []

    await logger.log_execution("timer_status", {}, None, _ok(), ToolContext())
    reports = await store.list_tool_usage_analytics()
    assert len(reports) == 1
    assert reports[0].total_executions == 2


def test_build_usage_analytics() -> None:
    records = [
        _record("a", "get_tasks", 0, ms=10),
        _record("a", "start_timer", 1, ms=30),
        _record("b", "get_tasks", 2, ms=20),
        _record("b", "start_timer", 3, success=False, ms=40),
        _record("a", "get_tasks", 4, ms=30),
    ]
    analytics = build_usage_analytics(records)

    assert analytics.total_executions == 5
    assert analytics.successful_executions == 4
    assert analytics.avg_execution_time_ms == 26
    assert [u.tool_name for u in analytics.most_used_tools] == ["get_tasks", "start_timer"]
    assert analytics.most_used_tools[0].percentage_of_total == 60
    assert [r.tool_name for r in analytics.most_reliable_tools] == ["get_tasks", "start_timer"]
    assert analytics.most_reliable_tools[1].common_failure_reasons == ["Timer already active"]

    perf = {p.tool_name: p for p in analytics.performance_stats}
    assert perf["get_tasks"].min_execution_time_ms == 10
    assert perf["get_tasks"].max_execution_time_ms == 30
    assert perf["get_tasks"].percentile_95_ms == 30

    assert analytics.error_analysis[0].error_type == "Timer already active"
    assert analytics.error_analysis[0].affected_tools == ["start_timer"]
    sequences = {tuple(s.tools): s.frequency for s in analytics.usage_patterns.common_sequences}
    assert sequences == {("get_tasks", "start_timer"): 2, ("start_timer", "get_tasks"): 1}
    assert analytics.usage_patterns.peak_hours == [9]
    assert analytics.recommendations[-1] == (
        "Monitor tool usage patterns to identify optimization opportunities"
    )


def test_build_usage_analytics_empty() -> None:
    analytics = build_usage_analytics([])
    assert analytics.total_executions == 0
    assert analytics.most_used_tools == []

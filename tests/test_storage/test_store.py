"""Tests for the SQLite repositories."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from agent_runtime.errors import RepositoryError
from agent_runtime.models.logs import ExecutionLogFilter, ExecutionLogRecord, PerformanceClass
from agent_runtime.models.records import Task, TaskStatus
from agent_runtime.models.trace import Step, StepKind, Trace
from agent_runtime.storage.sqlite import SQLiteStore


def _log(session_id: str, tool: str, success: bool, ms: int) -> ExecutionLogRecord:
    return ExecutionLogRecord(
        session_id=session_id,
        tool_name=tool,
        parameters="{}",
        result="{}",
        context="{}",
        execution_time_ms=ms,
        success=success,
        error=None if success else "Task not found",
        performance_class=PerformanceClass.FAST,
        tool_category="task_management",
        metadata={"suggestion_count": 0},
        recovery_suggestions=None if success else ["Verify the task ID exists"],
    )


@pytest.mark.asyncio
async def test_initialize_creates_tables(store: SQLiteStore) -> None:
    cursor = await store.db.execute("SELECT name FROM sqlite_master WHERE type='table'")
    names = {row[0] for row in await cursor.fetchall()}
    assert {"tasks", "time_sessions", "tool_execution_logs", "tool_usage_analytics", "traces"} <= names


@pytest.mark.asyncio
async def test_create_and_find_task(store: SQLiteStore) -> None:
    task = Task(title="Write report", tags=["work"], priority=2)
    await store.create(task)

    found = await store.find_by_id(task.id)
    assert found is not None
    assert found.title == "Write report"
    assert found.tags == ["work"]
    assert found.status == TaskStatus.PENDING
    assert await store.find_by_id("missing") is None


@pytest.mark.asyncio
async def test_find_all_filters_by_status(store: SQLiteStore) -> None:
    await store.create(Task(title="a"))
    await store.create(Task(title="b", status=TaskStatus.COMPLETED))

    assert [t.title for t in await store.find_all()] == ["b", "a"]
    assert [t.title for t in await store.find_all(status=TaskStatus.COMPLETED)] == ["b"]


@pytest.mark.asyncio
async def test_find_scheduled_between(store: SQLiteStore) -> None:
    now = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)
    await store.create(Task(title="today", scheduled_date=now))
    await store.create(Task(title="tomorrow", scheduled_date=now + timedelta(days=1)))
    await store.create(Task(title="unscheduled"))

    found = await store.find_scheduled_between(now - timedelta(hours=1), now + timedelta(hours=1))
    assert [t.title for t in found] == ["today"]


@pytest.mark.asyncio
async def test_update_task_sets_completed_at(store: SQLiteStore) -> None:
    task = await store.create(Task(title="Ship it"))
    updated = await store.update(task.id, {"status": TaskStatus.COMPLETED, "priority": 3})

    assert updated.status == TaskStatus.COMPLETED
    assert updated.priority == 3
    assert updated.completed_at is not None


@pytest.mark.asyncio
async def test_update_rejects_unknown_task_and_fields(store: SQLiteStore) -> None:
    task = await store.create(Task(title="x"))
    with pytest.raises(RepositoryError, match="Task not found"):
        await store.update("missing", {"title": "y"})
    with pytest.raises(RepositoryError, match="Unknown task fields: owner"):
        await store.update(task.id, {"owner": "me"})


@pytest.mark.asyncio
async def test_delete_and_search(store: SQLiteStore) -> None:
    keep = await store.create(Task(title="Quarterly report", description="finance numbers"))
    drop = await store.create(Task(title="Groceries"))

    await store.delete(drop.id)
    with pytest.raises(RepositoryError):
        await store.delete(drop.id)
    assert [t.id for t in await store.search("FINANCE")] == [keep.id]


@pytest.mark.asyncio
async def test_time_session_lifecycle(store: SQLiteStore) -> None:
    task = await store.create(Task(title="Focus"))
    assert await store.find_any_active_session() is None

    session = await store.start_session(task.id, "deep work")
    active = await store.find_any_active_session()
    assert active is not None and active.id == session.id

    stopped = await store.stop_session(session.id, "done")
    assert stopped.end_time is not None
    assert stopped.notes == "done"
    assert await store.find_any_active_session() is None

    with pytest.raises(RepositoryError, match="already stopped"):
        await store.stop_session(session.id)
    with pytest.raises(RepositoryError, match="not found"):
        await store.stop_session("missing")


@pytest.mark.asyncio
async def test_time_stats_ignore_running_sessions(store: SQLiteStore) -> None:
    task = await store.create(Task(title="Focus"))
    finished = await store.start_session(task.id)
    await store.stop_session(finished.id)
    await store.start_session(task.id)

    now = datetime.now(UTC)
    stats = await store.get_time_stats(now - timedelta(hours=1), now + timedelta(hours=1))
    assert stats.total_sessions == 1
    sessions = await store.find_sessions_between(now - timedelta(hours=1), now + timedelta(hours=1))
    assert len(sessions) == 2


@pytest.mark.asyncio
async def test_execution_logs_and_session_stats(store: SQLiteStore) -> None:
    await store.create_detailed_tool_execution_log(_log("s1", "get_tasks", True, 10))
    await store.create_detailed_tool_execution_log(_log("s1", "update_task", False, 30))
    await store.create_detailed_tool_execution_log(_log("s2", "get_tasks", True, 50))

    failed = await store.find_tool_execution_logs(ExecutionLogFilter(success=False))
    assert len(failed) == 1
    assert failed[0].recovery_suggestions == ["Verify the task ID exists"]
    assert not failed[0].success

    stats = await store.get_session_tool_stats("s1")
    assert stats.total_executions == 2
    assert stats.successful_executions == 1
    assert stats.failed_executions == 1
    assert stats.avg_execution_time_ms == 20
    assert stats.tools_used == {"get_tasks": 1, "update_task": 1}

    empty = await store.get_session_tool_stats("nobody")
    assert empty.total_executions == 0


@pytest.mark.asyncio
async def test_trace_upsert_and_fetch(store: SQLiteStore) -> None:
    trace = Trace(user_request="hi")
    trace.add_step(Step(kind=StepKind.ACTION, content="Answer: hello"))
    await store.save_trace(trace)
    trace.finalize("Answer: hello")
    await store.save_trace(trace)

    restored = await store.get_trace(trace.id)
    assert restored is not None
    assert restored.completed
    assert restored.final_response == "Answer: hello"
    assert [t.id for t in await store.list_traces()] == [trace.id]
    assert await store.get_trace("missing") is None

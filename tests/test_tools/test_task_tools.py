"""Tests for the task tools against a real SQLite store."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from agent_runtime.errors import ValidationError
from agent_runtime.models.records import Task, TaskStatus
from agent_runtime.models.tools import ToolContext
from agent_runtime.storage.sqlite import SQLiteStore
from agent_runtime.tools.tasks import CreateTaskTool, GetTasksTool, UpdateTaskTool

NOW = datetime(2025, 3, 10, 14, 30, tzinfo=UTC)


def _context(message: str = "", **kwargs) -> ToolContext:
    return ToolContext(user_message=message, current_time=NOW, **kwargs)


# --- get_tasks ---


@pytest.mark.asyncio
async def test_get_tasks_empty(store: SQLiteStore) -> None:
    result = await GetTasksTool(store).execute({"filter": "today"}, _context())
    assert result.success
    assert result.data["tasks"] == []
    assert result.data["count"] == 0
    assert result.message == "📝 No tasks found matching your criteria."


@pytest.mark.asyncio
async def test_get_tasks_today_filter(store: SQLiteStore) -> None:
    await store.create(Task(title="Standup", scheduled_date=NOW))
    await store.create(Task(title="Next week", scheduled_date=NOW + timedelta(days=7)))

    result = await GetTasksTool(store).execute({"filter": "today"}, _context())
    assert [t["title"] for t in result.data["tasks"]] == ["Standup"]
    assert result.message.startswith("📝 Found 1 task:")


@pytest.mark.asyncio
async def test_get_tasks_status_priority_and_search(store: SQLiteStore) -> None:
    await store.create(Task(title="Fix login bug", priority=3))
    await store.create(Task(title="Fix typo", priority=0))
    await store.create(Task(title="Fix deploy", priority=3, status=TaskStatus.COMPLETED))

    result = await GetTasksTool(store).execute(
        {"status": ["pending"], "priority": [3], "search": "fix"}, _context()
    )
    assert [t["title"] for t in result.data["tasks"]] == ["Fix login bug"]
    assert "with status 'pending'" in result.message
    assert "with Urgent priority" in result.message


@pytest.mark.asyncio
async def test_get_tasks_infers_filters_when_called_without_args(store: SQLiteStore) -> None:
    await store.create(Task(title="Done thing", status=TaskStatus.COMPLETED))
    await store.create(Task(title="Open thing"))

    result = await GetTasksTool(store).execute({}, _context("show my completed tasks"))
    assert result.data["filters_applied"] == {"status": ["completed"]}
    assert [t["title"] for t in result.data["tasks"]] == ["Done thing"]


@pytest.mark.asyncio
async def test_get_tasks_overdue(store: SQLiteStore) -> None:
    await store.create(Task(title="Late", due_date=NOW - timedelta(days=1)))
    await store.create(Task(title="Fine", due_date=NOW + timedelta(days=1)))

    result = await GetTasksTool(store).execute({"filter": "overdue"}, _context())
    assert [t["title"] for t in result.data["tasks"]] == ["Late"]


@pytest.mark.asyncio
async def test_get_tasks_inference(store: SQLiteStore) -> None:
    tool = GetTasksTool(store)
    inferred = await tool.infer_parameters(_context('show urgent tasks about "launch" #work'))
    assert inferred.parameters["priority"] == [3]
    assert inferred.parameters["search"] == "launch"
    assert inferred.parameters["tags"] == ["work"]
    assert inferred.confidence == 0.8

    plain = await tool.infer_parameters(_context("show everything"))
    assert plain.parameters == {}
    assert plain.confidence == 0.6


# --- create_task ---


@pytest.mark.asyncio
async def test_create_task(store: SQLiteStore) -> None:
    tool = CreateTaskTool(store)
    params = {"title": "Hello World", "scheduled_date": "today"}
    tool.validate_parameters(params)
    result = await tool.execute(params, _context())

    assert result.success
    assert result.message == "✅ Created task: 'Hello World'"
    assert result.data["title"] == "Hello World"
    stored = await store.find_by_id(result.data["task_id"])
    assert stored is not None
    assert stored.scheduled_date == datetime(2025, 3, 10, tzinfo=UTC)


def test_create_task_validation() -> None:
    tool = CreateTaskTool(task_repo=None)
    with pytest.raises(ValidationError, match="Missing required parameter: title"):
        tool.validate_parameters({})
    with pytest.raises(ValidationError, match="cannot be empty"):
        tool.validate_parameters({"title": "   "})
    with pytest.raises(ValidationError, match="at most 200 characters"):
        tool.validate_parameters({"title": "x" * 201})
    with pytest.raises(ValidationError, match="Parameter 'priority' must be <= 3"):
        tool.validate_parameters({"title": "ok", "priority": 7})
    with pytest.raises(ValidationError, match="Invalid due_date 'someday'"):
        tool.validate_parameters({"title": "ok", "due_date": "someday"})


@pytest.mark.asyncio
async def test_create_task_inference(store: SQLiteStore) -> None:
    inferred = await CreateTaskTool(store).infer_parameters(
        _context('Create a task "Buy milk" urgent, 30 minutes, due tomorrow')
    )
    assert inferred.parameters["title"] == "Buy milk"
    assert inferred.parameters["priority"] == 3
    assert inferred.parameters["time_estimate"] == 30
    assert inferred.parameters["due_date"] == "tomorrow"
    assert inferred.needs_confirmation == []


@pytest.mark.asyncio
async def test_create_task_inference_without_title(store: SQLiteStore) -> None:
    inferred = await CreateTaskTool(store).infer_parameters(_context("remember stuff"))
    assert "title" not in inferred.parameters
    assert inferred.needs_confirmation == ["title"]
    assert inferred.alternatives == [{"title": "remember stuff"}]


# --- update_task ---


@pytest.mark.asyncio
async def test_update_task(store: SQLiteStore) -> None:
    task = await store.create(Task(title="Write report"))
    tool = UpdateTaskTool(store)
    params = {"task_id": task.id, "status": "completed", "priority": 2}
    tool.validate_parameters(params)
    result = await tool.execute(params, _context())

    assert result.success
    assert result.data["updated_fields"] == ["status", "priority"]
    assert result.data["task"]["status"] == "completed"
    assert result.message == "✅ Updated **Write report**: status to 'completed' and priority to High"


@pytest.mark.asyncio
async def test_update_missing_task(store: SQLiteStore) -> None:
    result = await UpdateTaskTool(store).execute({"task_id": "nope", "title": "x"}, _context())
    assert not result.success
    assert result.error == "Task not found"
    assert result.message == "❌ Task not found: nope"


def test_update_requires_a_field() -> None:
    with pytest.raises(ValidationError, match="At least one field must be updated"):
        UpdateTaskTool(task_repo=None).validate_parameters({"task_id": "abc"})


@pytest.mark.asyncio
async def test_update_inference_matches_title(store: SQLiteStore) -> None:
    await store.create(Task(title="Groceries"))
    report = await store.create(Task(title="Quarterly report"))

    inferred = await UpdateTaskTool(store).infer_parameters(
        _context("mark the quarterly report as done")
    )
    assert inferred.parameters["task_id"] == report.id
    assert inferred.parameters["status"] == "completed"

"""Tests for tool registration, permissions, ranking and dispatch."""

from __future__ import annotations

import pytest

from agent_runtime.errors import PermissionDeniedError, ToolNotFoundError, ValidationError
from agent_runtime.models.tools import PermissionLevel, ToolContext
from agent_runtime.storage.sqlite import SQLiteStore
from agent_runtime.tools import build_default_registry
from agent_runtime.tracking import ExecutionLogger


@pytest.mark.asyncio
async def test_default_registry_has_every_tool(store: SQLiteStore) -> None:
    registry = await build_default_registry(store, store)
    assert await registry.tool_names() == [
        "create_task",
        "get_tasks",
        "productivity_analytics",
        "start_timer",
        "stop_timer",
        "timer_status",
        "update_task",
    ]


@pytest.mark.asyncio
async def test_available_tools_respect_permissions(store: SQLiteStore) -> None:
    registry = await build_default_registry(store, store, [PermissionLevel.READ_ONLY])
    assert await registry.available_tools() == [
        "get_tasks",
        "productivity_analytics",
        "timer_status",
    ]
    assert "start_timer" in await registry.available_tools(
        [PermissionLevel.READ_ONLY, PermissionLevel.TIMER_CONTROL]
    )


@pytest.mark.asyncio
async def test_permission_denied_before_execution(store: SQLiteStore) -> None:
    registry = await build_default_registry(store, store, [PermissionLevel.READ_ONLY])
    context = ToolContext(user_message='create task "Sneaky"')

    with pytest.raises(PermissionDeniedError) as exc_info:
        await registry.execute_smart("create_task", context)

    error = exc_info.value
    assert error.tool_name == "create_task"
    assert error.required == ["modify_tasks"]
    assert error.message == (
        "You don't have permission to use the 'create_task' tool. "
        "Required permissions: modify_tasks"
    )
    assert await store.find_all() == []
    assert (await registry.get_usage_stats("create_task")).total_executions == 0


@pytest.mark.asyncio
async def test_unknown_tool(store: SQLiteStore) -> None:
    registry = await build_default_registry(store, store)
    with pytest.raises(ToolNotFoundError, match="Tool 'teleport' not found"):
        await registry.execute_direct("teleport", {})


@pytest.mark.asyncio
async def test_suggestions_are_ranked_and_repeatable(store: SQLiteStore) -> None:
    registry = await build_default_registry(store, store)
    context = ToolContext(user_message="start the timer and show tasks")

    first = await registry.suggest_tools(context)
    second = await registry.suggest_tools(context)
    assert [s.tool_name for s in first] == ["get_tasks", "start_timer"]
    assert [s.tool_name for s in second] == [s.tool_name for s in first]
    assert all(s.relevance > 0.3 for s in first)


@pytest.mark.asyncio
async def test_suggestions_hide_forbidden_tools(store: SQLiteStore) -> None:
    registry = await build_default_registry(store, store, [PermissionLevel.READ_ONLY])
    suggestions = await registry.suggest_tools(ToolContext(user_message='create a new task "Report"'))
    assert suggestions == []


@pytest.mark.asyncio
async def test_execute_smart_merges_user_args_over_inferred(store: SQLiteStore) -> None:
    registry = await build_default_registry(store, store)
    result = await registry.execute_smart(
        "create_task",
        ToolContext(user_message='add task "Draft" urgent'),
        {"priority": 0},
    )
    assert result.success
    created = await store.find_by_id(result.data["task_id"])
    assert created.title == "Draft"
    assert created.priority == 0


@pytest.mark.asyncio
async def test_execute_smart_validates_merged_parameters(store: SQLiteStore) -> None:
    registry = await build_default_registry(store, store)
    with pytest.raises(ValidationError, match="Missing required parameter: title"):
        await registry.execute_smart("create_task", ToolContext(user_message="hmm"))


@pytest.mark.asyncio
async def test_execute_direct_takes_context_from_args(store: SQLiteStore) -> None:
    registry = await build_default_registry(store, store)
    result = await registry.execute_direct("get_tasks", {"user_message": "show completed tasks"})
    assert result.data["filters_applied"] == {"status": ["completed"]}

    with pytest.raises(ValidationError, match="Invalid context arguments for 'get_tasks'"):
        await registry.execute_direct("get_tasks", {"current_time": "not a date"})


@pytest.mark.asyncio
async def test_usage_stats_and_execution_log(store: SQLiteStore) -> None:
    logger = ExecutionLogger(store, "session-1")
    registry = await build_default_registry(store, store, execution_logger=logger)

    await registry.execute_direct("timer_status", {})
    await registry.execute_direct("stop_timer", {})

    stats = await registry.get_usage_stats("stop_timer")
    assert stats.total_executions == 1
    assert stats.successful_executions == 0
    assert stats.success_rate == 0

    session = await store.get_session_tool_stats("session-1")
    assert session.total_executions == 2
    assert session.failed_executions == 1
    assert session.tools_used == {"stop_timer": 1, "timer_status": 1}

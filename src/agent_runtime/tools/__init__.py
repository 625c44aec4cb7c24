"""Domain tools exposed to the model and the registry that dispatches them."""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from agent_runtime.models.tools import PermissionLevel
from agent_runtime.repositories.base import TaskRepository, TimeTrackingRepository
from agent_runtime.tools.analytics import ProductivityAnalyticsTool
from agent_runtime.tools.base import Tool
from agent_runtime.tools.registry import ToolRegistry
from agent_runtime.tools.tasks import CreateTaskTool, GetTasksTool, UpdateTaskTool
from agent_runtime.tools.timers import StartTimerTool, StopTimerTool, TimerStatusTool

if TYPE_CHECKING:
    from agent_runtime.tracking.execution_logger import ExecutionLogger


async def build_default_registry(
    task_repo: TaskRepository,
    time_repo: TimeTrackingRepository,
    permissions: Iterable[PermissionLevel] = (PermissionLevel.FULL_ACCESS,),
    execution_logger: ExecutionLogger | None = None,
) -> ToolRegistry:
    """A registry with every built-in tool registered."""
    registry = ToolRegistry(permissions, execution_logger)
    for tool in (
        GetTasksTool(task_repo),
        CreateTaskTool(task_repo),
        UpdateTaskTool(task_repo),
        StartTimerTool(time_repo, task_repo),
        StopTimerTool(time_repo, task_repo),
        TimerStatusTool(time_repo, task_repo),
        ProductivityAnalyticsTool(time_repo),
    ):
        await registry.register(tool)
    return registry


__all__ = [
    "CreateTaskTool",
    "GetTasksTool",
    "ProductivityAnalyticsTool",
    "StartTimerTool",
    "StopTimerTool",
    "TimerStatusTool",
    "Tool",
    "ToolRegistry",
    "UpdateTaskTool",
    "build_default_registry",
]

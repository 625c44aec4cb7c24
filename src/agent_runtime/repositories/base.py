"""Persistence interfaces the runtime depends on.

The storage layer implements these; tools and loggers only see the
abstract methods. Implementations raise RepositoryError on failure.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from agent_runtime.models.logs import (
    ExecutionLogFilter,
    ExecutionLogRecord,
    SessionToolStats,
    UsageAnalytics,
)
from agent_runtime.models.records import Task, TaskStatus, TimeSession, TimeStats
from agent_runtime.models.trace import Trace


class TaskRepository(ABC):
    @abstractmethod
    async def find_all(
        self, status: TaskStatus | None = None, project_id: str | None = None
    ) -> list[Task]:
        """All tasks, optionally filtered, newest first."""

    @abstractmethod
    async def find_by_id(self, task_id: str) -> Task | None: ...

    @abstractmethod
    async def find_scheduled_between(self, start: datetime, end: datetime) -> list[Task]:
        """Tasks whose scheduled date falls in [start, end]."""

    @abstractmethod
    async def create(self, task: Task) -> Task: ...

    @abstractmethod
    async def update(self, task_id: str, changes: dict) -> Task:
        """Apply ``changes`` to a task and return it. Unknown ids raise RepositoryError."""

    @abstractmethod
    async def delete(self, task_id: str) -> None: ...

    @abstractmethod
    async def search(self, query: str) -> list[Task]:
        """Case-insensitive match on title and description."""


class TimeTrackingRepository(ABC):
    @abstractmethod
    async def find_any_active_session(self) -> TimeSession | None: ...

    @abstractmethod
    async def start_session(self, task_id: str, notes: str | None = None) -> TimeSession: ...

    @abstractmethod
    async def stop_session(self, session_id: str, notes: str | None = None) -> TimeSession: ...

    @abstractmethod
    async def find_sessions_between(self, start: datetime, end: datetime) -> list[TimeSession]: ...

    @abstractmethod
    async def get_time_stats(self, start: datetime, end: datetime) -> TimeStats: ...


class LogRepository(ABC):
    @abstractmethod
    async def create_detailed_tool_execution_log(self, record: ExecutionLogRecord) -> None: ...

    @abstractmethod
    async def find_tool_execution_logs(
        self, log_filter: ExecutionLogFilter
    ) -> list[ExecutionLogRecord]:
        """Logs matching the filter, oldest first."""

    @abstractmethod
    async def create_tool_usage_analytics(self, analytics: UsageAnalytics) -> None: ...

    @abstractmethod
    async def get_session_tool_stats(self, session_id: str) -> SessionToolStats: ...

    async def save_trace(self, trace: Trace) -> None:
        """Persist a reasoning trace. Repositories without trace storage skip it."""

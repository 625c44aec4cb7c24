"""SQLite persistence for tasks, time sessions, tool execution logs, analytics, and traces."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path

import aiosqlite

from agent_runtime.errors import RepositoryError
from agent_runtime.models.logs import (
    ExecutionLogFilter,
    ExecutionLogRecord,
    SessionToolStats,
    UsageAnalytics,
)
from agent_runtime.models.records import Task, TaskStatus, TimeSession, TimeStats
from agent_runtime.models.trace import Trace
from agent_runtime.repositories.base import LogRepository, TaskRepository, TimeTrackingRepository

_SCHEMA = """
-- Tasks
CREATE TABLE IF NOT EXISTS tasks (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    description TEXT,
    priority INTEGER NOT NULL DEFAULT 1,
    status TEXT NOT NULL DEFAULT 'pending',
    time_estimate INTEGER NOT NULL DEFAULT 60,
    due_date TIMESTAMP,
    scheduled_date TIMESTAMP,
    tags JSON,
    project_id TEXT,
    created_at TIMESTAMP NOT NULL,
    updated_at TIMESTAMP NOT NULL,
    completed_at TIMESTAMP
);

-- Timer sessions (end_time NULL while running)
CREATE TABLE IF NOT EXISTS time_sessions (
    id TEXT PRIMARY KEY,
    task_id TEXT NOT NULL REFERENCES tasks(id),
    start_time TIMESTAMP NOT NULL,
    end_time TIMESTAMP,
    paused_minutes INTEGER NOT NULL DEFAULT 0,
    notes TEXT
);

-- Tool execution logs (append-only)
CREATE TABLE IF NOT EXISTS tool_execution_logs (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    tool_name TEXT NOT NULL,
    parameters JSON NOT NULL,
    inference_info JSON,
    result JSON NOT NULL,
    context JSON NOT NULL,
    user_id TEXT,
    execution_time_ms INTEGER NOT NULL,
    success INTEGER NOT NULL,
    error TEXT,
    performance_class TEXT NOT NULL,
    tool_category TEXT NOT NULL,
    metadata JSON,
    recovery_suggestions JSON,
    timestamp TIMESTAMP NOT NULL
);

-- Periodic usage analytics reports
CREATE TABLE IF NOT EXISTS tool_usage_analytics (
    id TEXT PRIMARY KEY,
    analytics_type TEXT NOT NULL,
    period_start TIMESTAMP NOT NULL,
    period_end TIMESTAMP NOT NULL,
    data JSON NOT NULL,
    total_executions INTEGER NOT NULL,
    successful_executions INTEGER NOT NULL,
    avg_execution_time_ms REAL NOT NULL,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Reasoning traces
CREATE TABLE IF NOT EXISTS traces (
    id TEXT PRIMARY KEY,
    user_request TEXT NOT NULL,
    final_response TEXT,
    completed INTEGER NOT NULL,
    iterations INTEGER NOT NULL,
    data JSON NOT NULL,
    started_at TIMESTAMP NOT NULL,
    completed_at TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_logs_session ON tool_execution_logs(session_id, timestamp);
CREATE INDEX IF NOT EXISTS idx_sessions_start ON time_sessions(start_time);
"""

_TASK_COLUMNS = {
    "title",
    "description",
    "priority",
    "status",
    "time_estimate",
    "due_date",
    "scheduled_date",
    "tags",
    "project_id",
    "completed_at",
}


def _ts(value: datetime | None) -> str | None:
    """Normalise a timestamp to a sortable UTC ISO string."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _row_to_task(row: aiosqlite.Row) -> Task:
    data = dict(row)
    data["tags"] = json.loads(data["tags"]) if data["tags"] else []
    return Task.model_validate(data)


def _row_to_session(row: aiosqlite.Row) -> TimeSession:
    return TimeSession.model_validate(dict(row))


def _row_to_log(row: aiosqlite.Row) -> ExecutionLogRecord:
    data = dict(row)
    data["success"] = bool(data["success"])
    data["metadata"] = json.loads(data["metadata"]) if data["metadata"] else {}
    data["recovery_suggestions"] = (
        json.loads(data["recovery_suggestions"]) if data["recovery_suggestions"] else None
    )
    return ExecutionLogRecord.model_validate(data)


class SQLiteStore(TaskRepository, TimeTrackingRepository, LogRepository):
    """Async SQLite storage implementing every repository interface."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        """Open connection and create schema."""
        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise RuntimeError("SQLiteStore not initialized; call initialize() first")
        return self._db

    async def _write(self, query: str, params: tuple | list = ()) -> int:
        try:
            cursor = await self.db.execute(query, params)
            await self.db.commit()
        except aiosqlite.Error as e:
            raise RepositoryError(f"Database write failed: {e}") from e
        return cursor.rowcount

    async def _fetchall(self, query: str, params: tuple | list = ()) -> list[aiosqlite.Row]:
        try:
            cursor = await self.db.execute(query, params)
            return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise RepositoryError(f"Database read failed: {e}") from e

    async def _fetchone(self, query: str, params: tuple | list = ()) -> aiosqlite.Row | None:
        rows = await self._fetchall(query, params)
        return rows[0] if rows else None

    # ----- Tasks -----

    async def find_all(
        self, status: TaskStatus | None = None, project_id: str | None = None
    ) -> list[Task]:
        query = "SELECT * FROM tasks WHERE 1=1"
        params: list = []
        if status:
            query += " AND status = ?"
            params.append(str(status))
        if project_id:
            query += " AND project_id = ?"
            params.append(project_id)
        query += " ORDER BY created_at DESC, rowid DESC"
        return [_row_to_task(row) for row in await self._fetchall(query, params)]

    async def find_by_id(self, task_id: str) -> Task | None:
        row = await self._fetchone("SELECT * FROM tasks WHERE id = ?", (task_id,))
        return _row_to_task(row) if row else None

    async def find_scheduled_between(self, start: datetime, end: datetime) -> list[Task]:
        rows = await self._fetchall(
            """SELECT * FROM tasks
               WHERE scheduled_date IS NOT NULL AND scheduled_date >= ? AND scheduled_date <= ?
               ORDER BY scheduled_date, rowid""",
            (_ts(start), _ts(end)),
        )
        return [_row_to_task(row) for row in rows]

    async def create(self, task: Task) -> Task:
        await self._write(
            """INSERT INTO tasks
               (id, title, description, priority, status, time_estimate, due_date,
                scheduled_date, tags, project_id, created_at, updated_at, completed_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                task.id,
                task.title,
                task.description,
                task.priority,
                str(task.status),
                task.time_estimate,
                _ts(task.due_date),
                _ts(task.scheduled_date),
                json.dumps(task.tags),
                task.project_id,
                _ts(task.created_at),
                _ts(task.updated_at),
                _ts(task.completed_at),
            ),
        )
        return task

    async def update(self, task_id: str, changes: dict) -> Task:
        unknown = set(changes) - _TASK_COLUMNS
        if unknown:
            raise RepositoryError(f"Unknown task fields: {', '.join(sorted(unknown))}")

        now = datetime.now(UTC)
        values = dict(changes)
        if values.get("status") == TaskStatus.COMPLETED and "completed_at" not in values:
            values["completed_at"] = now

        updates: list[str] = ["updated_at = ?"]
        params: list = [_ts(now)]
        for column, value in values.items():
            if isinstance(value, datetime):
                value = _ts(value)
            elif column == "tags":
                value = json.dumps(value)
            elif column == "status":
                value = str(value)
            updates.append(f"{column} = ?")
            params.append(value)
        params.append(task_id)

        rowcount = await self._write(
            f"UPDATE tasks SET {', '.join(updates)} WHERE id = ?",
            params,
        )
        if rowcount == 0:
            raise RepositoryError(f"Task not found: {task_id}")
        task = await self.find_by_id(task_id)
        if task is None:
            raise RepositoryError(f"Task not found: {task_id}")
        return task

    async def delete(self, task_id: str) -> None:
        rowcount = await self._write("DELETE FROM tasks WHERE id = ?", (task_id,))
        if rowcount == 0:
            raise RepositoryError(f"Task not found: {task_id}")

    async def search(self, query: str) -> list[Task]:
        pattern = f"%{query.lower()}%"
        rows = await self._fetchall(
            """SELECT * FROM tasks
               WHERE lower(title) LIKE ? OR lower(coalesce(description, '')) LIKE ?
               ORDER BY created_at DESC, rowid DESC""",
            (pattern, pattern),
        )
        return [_row_to_task(row) for row in rows]

    # ----- Time sessions -----

    async def find_any_active_session(self) -> TimeSession | None:
        row = await self._fetchone(
            "SELECT * FROM time_sessions WHERE end_time IS NULL ORDER BY start_time DESC LIMIT 1"
        )
        return _row_to_session(row) if row else None

    async def start_session(self, task_id: str, notes: str | None = None) -> TimeSession:
        session = TimeSession(task_id=task_id, notes=notes)
        await self._write(
            "INSERT INTO time_sessions (id, task_id, start_time, notes) VALUES (?, ?, ?, ?)",
            (session.id, session.task_id, _ts(session.start_time), notes),
        )
        return session

    async def stop_session(self, session_id: str, notes: str | None = None) -> TimeSession:
        row = await self._fetchone("SELECT * FROM time_sessions WHERE id = ?", (session_id,))
        if row is None:
            raise RepositoryError(f"Time session not found: {session_id}")
        session = _row_to_session(row)
        if not session.is_active:
            raise RepositoryError(f"Time session already stopped: {session_id}")

        session.end_time = datetime.now(UTC)
        if notes is not None:
            session.notes = notes
        await self._write(
            "UPDATE time_sessions SET end_time = ?, notes = ? WHERE id = ?",
            (_ts(session.end_time), session.notes, session_id),
        )
        return session

    async def find_sessions_between(self, start: datetime, end: datetime) -> list[TimeSession]:
        rows = await self._fetchall(
            """SELECT * FROM time_sessions
               WHERE start_time >= ? AND start_time <= ?
               ORDER BY start_time""",
            (_ts(start), _ts(end)),
        )
        return [_row_to_session(row) for row in rows]

    async def get_time_stats(self, start: datetime, end: datetime) -> TimeStats:
        sessions = [s for s in await self.find_sessions_between(start, end) if not s.is_active]
        if not sessions:
            return TimeStats()

        durations = [s.duration_minutes() for s in sessions]
        scores: list[float] = []
        for session, minutes in zip(sessions, durations):
            if minutes <= 0:
                continue
            worked = max(minutes - session.paused_minutes, 0)
            scores.append(worked / minutes * 100)

        total = sum(durations)
        return TimeStats(
            total_sessions=len(sessions),
            total_time_minutes=total,
            average_session_minutes=total / len(sessions),
            average_productivity_score=sum(scores) / len(scores) if scores else 0.0,
        )

    # ----- Tool execution logs -----

    async def create_detailed_tool_execution_log(self, record: ExecutionLogRecord) -> None:
        await self._write(
            """INSERT INTO tool_execution_logs
               (id, session_id, tool_name, parameters, inference_info, result, context, user_id,
                execution_time_ms, success, error, performance_class, tool_category, metadata,
                recovery_suggestions, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                record.id,
                record.session_id,
                record.tool_name,
                record.parameters,
                record.inference_info,
                record.result,
                record.context,
                record.user_id,
                record.execution_time_ms,
                int(record.success),
                record.error,
                str(record.performance_class),
                record.tool_category,
                json.dumps(record.metadata),
                json.dumps(record.recovery_suggestions)
                if record.recovery_suggestions is not None
                else None,
                _ts(record.timestamp),
            ),
        )

    async def find_tool_execution_logs(
        self, log_filter: ExecutionLogFilter
    ) -> list[ExecutionLogRecord]:
        query = "SELECT * FROM tool_execution_logs WHERE 1=1"
        params: list = []
        if log_filter.session_id:
            query += " AND session_id = ?"
            params.append(log_filter.session_id)
        if log_filter.tool_name:
            query += " AND tool_name = ?"
            params.append(log_filter.tool_name)
        if log_filter.success is not None:
            query += " AND success = ?"
            params.append(int(log_filter.success))
        if log_filter.start_time:
            query += " AND timestamp >= ?"
            params.append(_ts(log_filter.start_time))
        if log_filter.end_time:
            query += " AND timestamp <= ?"
            params.append(_ts(log_filter.end_time))
        query += " ORDER BY timestamp, rowid"
        if log_filter.limit:
            query += " LIMIT ?"
            params.append(log_filter.limit)
        return [_row_to_log(row) for row in await self._fetchall(query, params)]

    async def create_tool_usage_analytics(self, analytics: UsageAnalytics) -> None:
        await self._write(
            """INSERT INTO tool_usage_analytics
               (id, analytics_type, period_start, period_end, data, total_executions,
                successful_executions, avg_execution_time_ms)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                analytics.id,
                analytics.analytics_type,
                _ts(analytics.period_start),
                _ts(analytics.period_end),
                json.dumps(analytics.model_dump(mode="json")),
                analytics.total_executions,
                analytics.successful_executions,
                analytics.avg_execution_time_ms,
            ),
        )

    async def list_tool_usage_analytics(self, limit: int = 10) -> list[UsageAnalytics]:
        rows = await self._fetchall(
            "SELECT data FROM tool_usage_analytics ORDER BY created_at DESC, rowid DESC LIMIT ?",
            (limit,),
        )
        return [UsageAnalytics.model_validate(json.loads(row["data"])) for row in rows]

    async def get_session_tool_stats(self, session_id: str) -> SessionToolStats:
        rows = await self._fetchall(
            """SELECT tool_name,
                      COUNT(*) AS total,
                      SUM(success) AS successful,
                      SUM(execution_time_ms) AS total_ms
               FROM tool_execution_logs
               WHERE session_id = ?
               GROUP BY tool_name""",
            (session_id,),
        )
        stats = SessionToolStats(session_id=session_id)
        total_ms = 0
        for row in rows:
            stats.tools_used[row["tool_name"]] = row["total"]
            stats.total_executions += row["total"]
            stats.successful_executions += row["successful"] or 0
            total_ms += row["total_ms"] or 0
        stats.failed_executions = stats.total_executions - stats.successful_executions
        if stats.total_executions:
            stats.avg_execution_time_ms = total_ms / stats.total_executions
        return stats

    # ----- Traces -----

    async def save_trace(self, trace: Trace) -> None:
        await self._write(
            """INSERT INTO traces
               (id, user_request, final_response, completed, iterations, data, started_at, completed_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                 final_response=excluded.final_response,
                 completed=excluded.completed,
                 iterations=excluded.iterations,
                 data=excluded.data,
                 completed_at=excluded.completed_at""",
            (
                trace.id,
                trace.user_request,
                trace.final_response,
                int(trace.completed),
                trace.iterations,
                trace.model_dump_json(),
                _ts(trace.started_at),
                _ts(trace.completed_at),
            ),
        )

    async def get_trace(self, trace_id: str) -> Trace | None:
        row = await self._fetchone("SELECT data FROM traces WHERE id = ?", (trace_id,))
        return Trace.model_validate_json(row["data"]) if row else None

    async def list_traces(self, limit: int = 20) -> list[Trace]:
        rows = await self._fetchall(
            "SELECT data FROM traces ORDER BY started_at DESC LIMIT ?", (limit,)
        )
        return [Trace.model_validate_json(row["data"]) for row in rows]

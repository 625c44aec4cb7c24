"""Task and time-tracking records exchanged with the repositories."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field


class TaskStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Task(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    title: str
    description: str | None = None
    priority: int = 1
    status: TaskStatus = TaskStatus.PENDING
    time_estimate: int = 60  # minutes
    due_date: datetime | None = None
    scheduled_date: datetime | None = None
    tags: list[str] = Field(default_factory=list)
    project_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status not in (TaskStatus.COMPLETED, TaskStatus.CANCELLED)


class TimeSession(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    task_id: str
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    paused_minutes: int = 0
    notes: str | None = None

    @property
    def is_active(self) -> bool:
        return self.end_time is None

    def duration_minutes(self, now: datetime | None = None) -> int:
        end = self.end_time or now or datetime.now(UTC)
        return max(int((end - self.start_time).total_seconds() // 60), 0)


class TimeStats(BaseModel):
    total_sessions: int = 0
    total_time_minutes: int = 0
    average_session_minutes: float = 0.0
    average_productivity_score: float = 0.0

"""Reasoning trace: the auditable record of one request through the ReAct loop."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(UTC)


def _uuid() -> str:
    return str(uuid.uuid4())


class StepKind(StrEnum):
    THOUGHT = "thought"
    ACTION = "action"
    OBSERVATION = "observation"
    FINAL_ANSWER = "final_answer"
    ERROR = "error"


class ToolInvocation(BaseModel):
    """A tool call parsed from a model completion."""

    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    id: str = Field(default_factory=_uuid)


class ToolOutcome(BaseModel):
    success: bool
    data: Any = None
    message: str = ""
    execution_time_ms: int = 0
    error: str | None = None


class Step(BaseModel):
    id: str = Field(default_factory=_uuid)
    kind: StepKind
    content: str
    tool_call: ToolInvocation | None = None
    tool_result: ToolOutcome | None = None
    timestamp: datetime = Field(default_factory=_now)
    duration_ms: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class Trace(BaseModel):
    """One request's reasoning chain. Steps are append-only."""

    id: str = Field(default_factory=_uuid)
    user_request: str
    steps: list[Step] = Field(default_factory=list)
    final_response: str = ""
    completed: bool = False
    iterations: int = 0
    started_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None
    total_duration_ms: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def add_step(self, step: Step) -> Step:
        self.steps.append(step)
        return step

    def finalize(self, response: str) -> None:
        """Mark the trace completed with ``response``. Only the first call has effect."""
        if self.completed:
            return
        self.final_response = response
        self.completed = True
        # Coarse clocks can return the start instant again.
        self.completed_at = max(_now(), self.started_at + timedelta(microseconds=1))

    def last_successful_outcome(self) -> ToolOutcome | None:
        for step in reversed(self.steps):
            if step.tool_result is not None and step.tool_result.success:
                return step.tool_result
        return None

    def steps_of(self, kind: StepKind) -> list[Step]:
        return [s for s in self.steps if s.kind == kind]

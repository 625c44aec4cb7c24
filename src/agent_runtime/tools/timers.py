"""Timer tools: start, stop and inspect the single active time-tracking session."""

from __future__ import annotations

import logging
import time
from typing import Any

from agent_runtime.errors import RepositoryError, ValidationError
from agent_runtime.models.records import TimeSession
from agent_runtime.models.tools import (
    InferredParameters,
    ParameterDefinition,
    ParameterType,
    PermissionLevel,
    ToolCapability,
    ToolContext,
    ToolExample,
    ToolExecutionResult,
)
from agent_runtime.repositories.base import TaskRepository, TimeTrackingRepository
from agent_runtime.tools import inference
from agent_runtime.tools.base import Tool, elapsed_ms

logger = logging.getLogger(__name__)

_STOP_NOTE_MARKERS = (
    "completed",
    "finished",
    "done with",
    "worked on",
    "accomplished",
    "notes:",
    "note:",
    "summary:",
)


def _notes_param(description: str) -> ParameterDefinition:
    return ParameterDefinition(
        name="notes",
        param_type=ParameterType.STRING,
        description=description,
        inference_sources=["user_message"],
    )


def _check_notes(parameters: dict[str, Any], limit: int) -> None:
    notes = parameters.get("notes")
    if isinstance(notes, str) and len(notes) > limit:
        raise ValidationError(f"Notes too long (max {limit} characters)")


def _failure(message: str, error: str, suggestions: list[str], start: float) -> ToolExecutionResult:
    return ToolExecutionResult(
        success=False,
        message=message,
        execution_time_ms=elapsed_ms(start),
        error=error,
        suggestions=suggestions,
    )


class _TimerTool(Tool):
    def __init__(self, time_repo: TimeTrackingRepository, task_repo: TaskRepository):
        self.time_repo = time_repo
        self.task_repo = task_repo

    async def task_title(self, task_id: str) -> str:
        try:
            task = await self.task_repo.find_by_id(task_id)
        except RepositoryError:
            logger.exception("Could not load task %s", task_id)
            return task_id
        return task.title if task else task_id


class StartTimerTool(_TimerTool):
    name = "start_timer"
    description = "Start time tracking for a task"

    def capability(self) -> ToolCapability:
        return ToolCapability(
            name=self.name,
            description=self.description,
            optional_parameters=[
                ParameterDefinition(
                    name="task_id",
                    param_type=ParameterType.STRING,
                    description="ID of the task to start timing (auto-detected if not provided)",
                    inference_sources=["active_task", "recent_tasks", "task_references", "task_titles"],
                ),
                _notes_param("Optional notes about what you'll be working on"),
            ],
            required_permissions=[PermissionLevel.TIMER_CONTROL],
            category="Time Tracking",
            examples=[
                ToolExample(
                    user_request="Start timer",
                    description="Starts timer for the most likely task",
                ),
                ToolExample(
                    user_request="Begin timing work on the quarterly report",
                    parameters={"notes": "the quarterly report"},
                    description="Starts timer with inferred notes and task matching",
                ),
                ToolExample(
                    user_request="Start timer for this task",
                    description="Uses current active task from context",
                ),
            ],
        )

    async def infer_task_id(self, context: ToolContext) -> str | None:
        text = context.user_message.lower()
        if context.active_task_id and inference.keyword_hits(text, ("this task", "current task")):
            return context.active_task_id

        try:
            tasks = await self.task_repo.find_all()
        except RepositoryError:
            logger.exception("Could not load tasks to pick a timer target")
            tasks = []

        open_tasks = [t for t in tasks if t.is_open]
        if match := inference.match_task_by_title(text, open_tasks):
            return match.id
        if context.active_task_id:
            return context.active_task_id
        if context.recent_task_ids:
            return context.recent_task_ids[0]
        return open_tasks[0].id if open_tasks else None

    async def infer_parameters(self, context: ToolContext) -> InferredParameters:
        parameters: dict[str, Any] = {}
        needs_confirmation: list[str] = []
        alternatives: list[dict[str, Any]] = []
        explanations: list[str] = []
        confidence = 0.7

        if task_id := await self.infer_task_id(context):
            parameters["task_id"] = task_id
            confidence += 0.2
            explanations.append(f"Auto-detected task: {task_id}")
        else:
            needs_confirmation.append("task_id")
            alternatives.append({"suggestion": "Create a new task first"})
            explanations.append("No suitable task found for timer")
            confidence -= 0.3

        notes = inference.text_after(
            context.user_message, ("working on", "focusing on", "notes:", "note:"), min_length=4
        )
        if notes:
            parameters["notes"] = notes
            confidence += 0.1
            explanations.append(f"Extracted notes: '{notes}'")

        return InferredParameters(
            parameters=parameters,
            confidence=min(confidence, 1.0),
            needs_confirmation=needs_confirmation,
            alternatives=alternatives,
            explanation="; ".join(explanations),
        )

    def validate_parameters(self, parameters: dict[str, Any]) -> None:
        _check_notes(parameters, 500)
        super().validate_parameters(parameters)

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        start = time.perf_counter()
        try:
            task_id = parameters.get("task_id") or await self.infer_task_id(context)
            if not task_id:
                return _failure(
                    "❌ No task found to start timer for. Please specify a task or create one first.",
                    "No task available",
                    [
                        "Create a new task first",
                        "Specify which task to time",
                        "List your tasks to see available options",
                    ],
                    start,
                )

            active = await self.time_repo.find_any_active_session()
            if active is not None:
                running = await self.task_title(active.task_id)
                return _failure(
                    f"⏱️ Timer is already running for task {running}. Stop the current timer first.",
                    "Timer already active",
                    ["Stop the current timer first", "Switch to the running task", "Check timer status"],
                    start,
                )

            task = await self.task_repo.find_by_id(task_id)
            if task is None:
                return _failure(
                    f"❌ Task not found: {task_id}",
                    "Task not found",
                    ["List your tasks to see available options"],
                    start,
                )
            session = await self.time_repo.start_session(task_id, parameters.get("notes"))
        except RepositoryError as e:
            return _failure(
                f"❌ Failed to start timer: {e}",
                str(e),
                ["Try again", "Check if the task exists", "Verify timer permissions"],
                start,
            )

        logger.info("Started timer session %s for task %s", session.id, task_id)
        return ToolExecutionResult(
            success=True,
            data={
                "session_id": session.id,
                "task_id": task_id,
                "task_title": task.title,
                "started_at": session.start_time.isoformat(),
            },
            message=f"⏱️ Timer started for: **{task.title}**",
            execution_time_ms=elapsed_ms(start),
            suggestions=[
                "Focus on your task now",
                "Stop the timer when you're done",
                "Add notes during your work session",
            ],
        )


class StopTimerTool(_TimerTool):
    name = "stop_timer"
    description = "Stop the active timer and record notes about the session"

    def capability(self) -> ToolCapability:
        return ToolCapability(
            name=self.name,
            description=self.description,
            optional_parameters=[_notes_param("Notes about the work completed during this session")],
            required_permissions=[PermissionLevel.TIMER_CONTROL],
            category="Time Tracking",
            examples=[
                ToolExample(user_request="Stop timer", description="Stops the current timer without notes"),
                ToolExample(
                    user_request="Stop timer - completed the first draft",
                    parameters={"notes": "the first draft"},
                    description="Stops timer with inferred completion notes",
                ),
                ToolExample(
                    user_request="End session, finished reviewing all documents",
                    parameters={"notes": "reviewing all documents"},
                    description="Stops timer with detailed work summary",
                ),
            ],
        )

    @staticmethod
    def extract_session_notes(message: str) -> str | None:
        if notes := inference.text_after(message, _STOP_NOTE_MARKERS, min_length=4):
            return notes
        stripped = message.strip()
        if (
            0 < len(stripped) < 200
            and not inference.keyword_hits(stripped, ("stop", "timer", "end"))
        ):
            return stripped
        return None

    async def infer_parameters(self, context: ToolContext) -> InferredParameters:
        parameters: dict[str, Any] = {}
        explanation = "No session notes detected"
        if notes := self.extract_session_notes(context.user_message):
            parameters["notes"] = notes
            explanation = f"Extracted session notes: '{notes}'"
        return InferredParameters(parameters=parameters, confidence=0.8, explanation=explanation)

    def validate_parameters(self, parameters: dict[str, Any]) -> None:
        _check_notes(parameters, 1000)
        super().validate_parameters(parameters)

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        start = time.perf_counter()
        notes = parameters.get("notes")
        try:
            active = await self.time_repo.find_any_active_session()
            if active is None:
                return _failure(
                    "⏱️ No active timer found to stop.",
                    "No active timer",
                    ["Start a timer first", "Check if timer is already stopped", "View recent timer sessions"],
                    start,
                )
            session = await self.time_repo.stop_session(active.id, notes)
        except RepositoryError as e:
            return _failure(
                f"❌ Failed to stop timer: {e}",
                str(e),
                ["Try again", "Check timer status"],
                start,
            )

        title = await self.task_title(session.task_id)
        minutes = session.duration_minutes()
        duration_text = inference.format_minutes(minutes)
        data: dict[str, Any] = {
            "session_id": session.id,
            "task_id": session.task_id,
            "task_title": title,
            "duration_ms": int((session.end_time - session.start_time).total_seconds() * 1000),
            "duration_text": duration_text,
        }
        message = f"⏹️ Timer stopped for **{title}** ({duration_text})"
        if session.notes:
            data["notes"] = session.notes
            message += f"\n📝 Notes: {session.notes}"

        logger.info("Stopped timer session %s after %s", session.id, duration_text)
        return ToolExecutionResult(
            success=True,
            data=data,
            message=message,
            execution_time_ms=elapsed_ms(start),
            suggestions=[
                "Great work! Take a break if needed",
                "Update task status if completed",
                "Start timer for your next task",
            ],
        )


class TimerStatusTool(_TimerTool):
    name = "timer_status"
    description = "Check whether a timer is running and how long it has been active"

    def capability(self) -> ToolCapability:
        return ToolCapability(
            name=self.name,
            description=self.description,
            required_permissions=[PermissionLevel.READ_ONLY],
            category="Time Tracking",
            examples=[
                ToolExample(
                    user_request="What's my timer status?",
                    description="Shows current timer status and elapsed time",
                ),
                ToolExample(
                    user_request="How long have I been working?",
                    description="Shows elapsed time for current session",
                ),
            ],
        )

    async def infer_parameters(self, context: ToolContext) -> InferredParameters:
        return InferredParameters(confidence=1.0, explanation="No parameters needed for timer status")

    def describe_session(self, session: TimeSession, title: str, context: ToolContext) -> dict[str, Any]:
        minutes = session.duration_minutes(context.current_time)
        data: dict[str, Any] = {
            "active": True,
            "session_id": session.id,
            "task_id": session.task_id,
            "task_title": title,
            "elapsed_minutes": minutes,
            "duration_text": inference.format_minutes(minutes),
            "started_at": session.start_time.isoformat(),
        }
        if session.notes:
            data["notes"] = session.notes
        return data

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        start = time.perf_counter()
        try:
            session = await self.time_repo.find_any_active_session()
        except RepositoryError as e:
            return _failure(
                f"❌ Failed to check timer status: {e}",
                str(e),
                ["Try again", "Check database connection"],
                start,
            )

        if session is None:
            return ToolExecutionResult(
                success=True,
                data={"active": False},
                message="⏱️ No timer currently running",
                execution_time_ms=elapsed_ms(start),
                suggestions=[
                    "Start a timer for your next task",
                    "View your recent time tracking",
                    "Check your productivity analytics",
                ],
            )

        data = self.describe_session(session, await self.task_title(session.task_id), context)
        return ToolExecutionResult(
            success=True,
            data=data,
            message=f"⏱️ Timer running for **{data['task_title']}** ({data['duration_text']})",
            execution_time_ms=elapsed_ms(start),
            suggestions=[
                "Stop timer when done",
                "Add notes about your progress",
                "Take a break if you've been working long",
            ],
        )

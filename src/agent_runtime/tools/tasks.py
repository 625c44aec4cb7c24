"""Task tools: list, create and update tasks through the TaskRepository."""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime, timedelta
from typing import Any

from agent_runtime.errors import RepositoryError, ValidationError
from agent_runtime.models.records import Task, TaskStatus
from agent_runtime.models.tools import (
    InferredParameters,
    ParameterDefinition,
    ParameterType,
    ParameterValidation,
    PermissionLevel,
    ToolCapability,
    ToolContext,
    ToolExample,
    ToolExecutionResult,
)
from agent_runtime.repositories.base import TaskRepository
from agent_runtime.tools import inference
from agent_runtime.tools.base import Tool, elapsed_ms

logger = logging.getLogger(__name__)

STATUS_VALUES = [s.value for s in TaskStatus]
PRIORITY_NAMES = {0: "Low", 1: "Medium", 2: "High", 3: "Urgent"}
PRIORITY_EMOJI = {0: "🔵", 1: "🟡", 2: "🟠", 3: "🔴"}
STATUS_EMOJI = {"completed": "✅", "in_progress": "🔄", "pending": "⏳", "cancelled": "❌"}
FILTER_VALUES = ["today", "this week", "overdue", "pending", "completed", "in_progress"]

_DATE_HELP = "Use today, tomorrow, next week or YYYY-MM-DD"
_PREVIEW_COUNT = 5


def _priority_param(description: str) -> ParameterDefinition:
    return ParameterDefinition(
        name="priority",
        param_type=ParameterType.NUMBER,
        description=description,
        default_value=1,
        validation=ParameterValidation(min=0, max=3, allowed_values=[0, 1, 2, 3]),
        inference_sources=["priority_keywords"],
    )


def _date_param(name: str, description: str) -> ParameterDefinition:
    return ParameterDefinition(
        name=name,
        param_type=ParameterType.STRING,
        description=description,
        inference_sources=["date_patterns", "relative_dates"],
    )


def _check_dates(parameters: dict[str, Any], names: tuple[str, ...]) -> None:
    now = datetime.now(UTC)
    for name in names:
        value = parameters.get(name)
        if value is None:
            continue
        if not isinstance(value, str) or inference.parse_date(value, now) is None:
            raise ValidationError(f"Invalid {name} '{value}'. {_DATE_HELP}")


def _join_fields(fields: list[str]) -> str:
    if len(fields) == 1:
        return fields[0]
    if len(fields) == 2:
        return f"{fields[0]} and {fields[1]}"
    return f"{', '.join(fields[:-1])}, and {fields[-1]}"


class GetTasksTool(Tool):
    name = "get_tasks"
    description = "Retrieve and filter tasks by status, priority, schedule, search text or tags"

    def __init__(self, task_repo: TaskRepository):
        self.task_repo = task_repo

    def capability(self) -> ToolCapability:
        return ToolCapability(
            name=self.name,
            description=self.description,
            optional_parameters=[
                ParameterDefinition(
                    name="status",
                    param_type=ParameterType.ARRAY,
                    description="Task statuses to include",
                    validation=ParameterValidation(allowed_values=STATUS_VALUES),
                    inference_sources=["status_keywords"],
                ),
                ParameterDefinition(
                    name="priority",
                    param_type=ParameterType.ARRAY,
                    description="Priorities to include (0=Low .. 3=Urgent)",
                    validation=ParameterValidation(allowed_values=[0, 1, 2, 3]),
                    inference_sources=["priority_keywords"],
                ),
                ParameterDefinition(
                    name="search",
                    param_type=ParameterType.STRING,
                    description="Text to match against title and description",
                    validation=ParameterValidation(max_length=100),
                    inference_sources=["quoted_text", "search_indicators"],
                ),
                ParameterDefinition(
                    name="tags",
                    param_type=ParameterType.ARRAY,
                    description="Only tasks carrying one of these tags",
                    inference_sources=["hashtags"],
                ),
                ParameterDefinition(
                    name="limit",
                    param_type=ParameterType.NUMBER,
                    description="Maximum number of tasks to return",
                    default_value=50,
                    validation=ParameterValidation(min=1, max=1000),
                ),
                ParameterDefinition(
                    name="filter",
                    param_type=ParameterType.STRING,
                    description="Shorthand filter: " + ", ".join(FILTER_VALUES),
                    validation=ParameterValidation(allowed_values=FILTER_VALUES),
                    inference_sources=["relative_dates", "status_keywords"],
                ),
            ],
            required_permissions=[PermissionLevel.READ_ONLY],
            category="Task Management",
            examples=[
                ToolExample(
                    user_request="Show me my urgent tasks",
                    parameters={"priority": [3]},
                    description="Lists urgent tasks only",
                ),
                ToolExample(
                    user_request="What do I have today?",
                    parameters={"filter": "today"},
                    description="Lists tasks scheduled for today",
                ),
            ],
        )

    def infer_filters(self, context: ToolContext) -> dict[str, Any]:
        text = context.user_message.lower()
        filters: dict[str, Any] = {}

        if inference.keyword_hits(text, ("completed", "done", "finished")):
            filters["status"] = ["completed"]
        elif inference.keyword_hits(text, ("pending", "todo", "not started")):
            filters["status"] = ["pending"]
        elif inference.keyword_hits(text, ("in progress", "working on", "current")):
            filters["status"] = ["in_progress"]
        elif inference.keyword_hits(text, ("active", "open")):
            filters["status"] = ["pending", "in_progress"]

        if inference.keyword_hits(text, ("urgent", "critical")):
            filters["priority"] = [3]
        elif inference.keyword_hits(text, ("high priority", "important")):
            filters["priority"] = [2, 3]
        elif inference.keyword_hits(text, ("low priority", "minor")):
            filters["priority"] = [0]

        if "today" in text:
            filters["filter"] = "today"
        elif inference.keyword_hits(text, ("this week", "weekly")):
            filters["filter"] = "this week"
        elif inference.keyword_hits(text, ("overdue", "late")):
            filters["filter"] = "overdue"

        search = inference.extract_quoted(context.user_message)
        if search is None:
            search = self._search_after_indicator(text)
        if search:
            filters["search"] = search

        tags = inference.extract_hashtags(context.user_message)
        tagged = inference.text_after(text, ("tagged with", "tagged as", "tag:"), min_length=2)
        if tagged:
            tags.extend(t.strip() for t in tagged.replace(";", ",").split(",") if t.strip())
        if tags:
            filters["tags"] = sorted(set(tags))

        if inference.keyword_hits(text, ("recent", "latest")):
            filters["limit"] = 10
        return filters

    @staticmethod
    def _search_after_indicator(text: str) -> str | None:
        for indicator in ("containing", "related to", "about", "matching"):
            index = text.find(indicator)
            if index == -1:
                continue
            words = [
                w
                for w in text[index + len(indicator):].split()[:3]
                if len(w) > 2 and w not in inference.STOP_WORDS
            ]
            if words:
                return " ".join(words).strip(".,!?")
        return None

    async def infer_parameters(self, context: ToolContext) -> InferredParameters:
        filters = self.infer_filters(context)
        explanations = [f"Inferred {key} filter from message" for key in filters]
        confidence = 0.8
        if not filters:
            explanations.append("No specific filters detected, will show all tasks")
            confidence = 0.6
        return InferredParameters(
            parameters=filters, confidence=confidence, explanation="; ".join(explanations)
        )

    async def _query(self, filters: dict[str, Any], now: datetime) -> list[Task]:
        scope = filters.get("filter")
        if scope == "today":
            return await self.task_repo.find_scheduled_between(
                inference.start_of_day(now), inference.end_of_day(now)
            )
        if scope == "this week":
            week_start = inference.start_of_week(now)
            return await self.task_repo.find_scheduled_between(
                week_start, inference.end_of_day(week_start + timedelta(days=6))
            )
        if scope in STATUS_VALUES and not filters.get("status"):
            filters["status"] = [scope]
        statuses = filters.get("status") or []
        status = TaskStatus(statuses[0]) if len(statuses) == 1 else None
        return await self.task_repo.find_all(status=status)

    def _apply_filters(self, tasks: list[Task], filters: dict[str, Any], now: datetime) -> list[Task]:
        if statuses := filters.get("status"):
            tasks = [t for t in tasks if t.status.value in statuses]
        if priorities := filters.get("priority"):
            tasks = [t for t in tasks if t.priority in priorities]
        if search := filters.get("search"):
            needle = search.lower()
            tasks = [
                t
                for t in tasks
                if needle in t.title.lower() or needle in (t.description or "").lower()
            ]
        if tags := filters.get("tags"):
            wanted = {tag.lower() for tag in tags}
            tasks = [t for t in tasks if wanted & {tag.lower() for tag in t.tags}]
        if filters.get("filter") == "overdue":
            tasks = [
                t
                for t in tasks
                if t.due_date is not None and t.due_date < now and t.status != TaskStatus.COMPLETED
            ]
        return tasks[: int(filters.get("limit", 50))]

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        start = time.perf_counter()
        filters = {k: v for k, v in parameters.items() if v not in (None, "", [])}
        if not filters:
            filters = self.infer_filters(context)

        try:
            tasks = await self._query(filters, context.current_time)
        except RepositoryError as e:
            return ToolExecutionResult(
                success=False,
                message=f"❌ Failed to retrieve tasks: {e}",
                execution_time_ms=elapsed_ms(start),
                error=str(e),
                suggestions=["Try again with different filters", "Check your database connection"],
            )

        tasks = self._apply_filters(tasks, filters, context.current_time)
        if tasks:
            suggestions = [
                "Start a timer for any of these tasks",
                "Update task status or priority as needed",
                "Add more details to task descriptions",
            ]
        else:
            suggestions = [
                "Try broadening your search criteria",
                "Create a new task if needed",
                "Check if tasks exist with different status",
            ]
        return ToolExecutionResult(
            success=True,
            data={
                "tasks": [t.model_dump(mode="json") for t in tasks],
                "count": len(tasks),
                "filters_applied": filters,
            },
            message=self.summarize(tasks, filters),
            execution_time_ms=elapsed_ms(start),
            suggestions=suggestions,
        )

    def summarize(self, tasks: list[Task], filters: dict[str, Any]) -> str:
        if not tasks:
            return "📝 No tasks found matching your criteria."

        count = len(tasks)
        summary = f"📝 Found {count} task{'' if count == 1 else 's'}"
        described: list[str] = []
        if statuses := filters.get("status"):
            if len(statuses) == 1:
                described.append(f"with status '{statuses[0]}'")
            else:
                described.append(f"with status in [{', '.join(statuses)}]")
        if priorities := filters.get("priority"):
            names = [PRIORITY_NAMES.get(p, "Unknown") for p in priorities]
            if len(names) == 1:
                described.append(f"with {names[0]} priority")
            else:
                described.append(f"with priority in [{', '.join(names)}]")
        if search := filters.get("search"):
            described.append(f"containing '{search}'")
        if tags := filters.get("tags"):
            described.append(
                f"tagged with '{tags[0]}'" if len(tags) == 1 else f"tagged with [{', '.join(tags)}]"
            )
        if described:
            summary += " " + " and ".join(described)
        summary += ":\n\n"

        for i, task in enumerate(tasks[:_PREVIEW_COUNT], 1):
            line = (
                f"{i}. {STATUS_EMOJI.get(task.status.value, '📝')} "
                f"{PRIORITY_EMOJI.get(task.priority, '⚪')} **{task.title}**"
            )
            if task.due_date:
                line += f" (due {task.due_date:%m/%d})"
            if task.time_estimate > 0:
                line += f" ({inference.format_minutes(task.time_estimate)})"
            summary += line + "\n"

        remaining = count - _PREVIEW_COUNT
        if remaining > 0:
            summary += f"\n... and {remaining} more task{'' if remaining == 1 else 's'}"
        return summary


class CreateTaskTool(Tool):
    name = "create_task"
    description = "Create a new task with title, description, priority, and other details"

    _TITLE_MARKERS = (
        "create task:",
        "add task called",
        "create task ",
        "add task ",
        "new task ",
        "make task ",
        "todo:",
        "task:",
    )

    def __init__(self, task_repo: TaskRepository):
        self.task_repo = task_repo

    def capability(self) -> ToolCapability:
        return ToolCapability(
            name=self.name,
            description=self.description,
            required_parameters=[
                ParameterDefinition(
                    name="title",
                    param_type=ParameterType.STRING,
                    description="Task title or name",
                    validation=ParameterValidation(min_length=1, max_length=200),
                    inference_sources=["user_message", "quoted_text", "task_creation_patterns"],
                ),
            ],
            optional_parameters=[
                ParameterDefinition(
                    name="description",
                    param_type=ParameterType.STRING,
                    description="Detailed task description",
                    validation=ParameterValidation(max_length=1000),
                    inference_sources=["user_message"],
                ),
                _priority_param("Task priority (0=Low, 1=Medium, 2=High, 3=Urgent)"),
                ParameterDefinition(
                    name="time_estimate",
                    param_type=ParameterType.NUMBER,
                    description="Estimated time to complete in minutes",
                    default_value=60,
                    validation=ParameterValidation(min=1, max=10080),
                    inference_sources=["time_patterns"],
                ),
                _date_param("due_date", "Due date (today, tomorrow, next week or YYYY-MM-DD)"),
                _date_param("scheduled_date", "Day the task is planned for"),
                ParameterDefinition(
                    name="tags",
                    param_type=ParameterType.ARRAY,
                    description="Array of tags for categorization",
                    default_value=[],
                    inference_sources=["hashtags", "categories"],
                ),
            ],
            required_permissions=[PermissionLevel.MODIFY_TASKS],
            requires_confirmation=True,
            category="Task Management",
            examples=[
                ToolExample(
                    user_request="Create a high priority task to review the quarterly report",
                    parameters={"title": "Review quarterly report", "priority": 2},
                    description="Creates a high priority task with inferred title",
                ),
                ToolExample(
                    user_request="Add task: 'Prepare presentation for Monday meeting' - about 2 hours",
                    parameters={
                        "title": "Prepare presentation for Monday meeting",
                        "time_estimate": 120,
                    },
                    description="Creates task with explicit title and inferred time estimate",
                ),
            ],
        )

    def extract_title(self, message: str) -> str | None:
        return inference.extract_quoted(message) or inference.text_after(
            message, self._TITLE_MARKERS
        )

    async def infer_parameters(self, context: ToolContext) -> InferredParameters:
        message = context.user_message
        parameters: dict[str, Any] = {}
        needs_confirmation: list[str] = []
        alternatives: list[dict[str, Any]] = []
        explanations: list[str] = []
        confidence = 0.0

        if title := self.extract_title(message):
            parameters["title"] = title
            confidence += 0.4
            explanations.append(f"Extracted title: '{title}'")
        else:
            needs_confirmation.append("title")
            explanations.append("Could not extract task title from message")
            if 0 < len(message) < 100:
                alternatives.append({"title": message.strip()})

        priority = inference.extract_priority(message)
        if priority is not None:
            parameters["priority"] = priority
            confidence += 0.2
            explanations.append(f"Inferred priority: {priority}")
        else:
            parameters["priority"] = 1
            explanations.append("Using default medium priority")

        if description := inference.text_after(message, ("description:", "details:")):
            parameters["description"] = description
            confidence += 0.1

        if (estimate := inference.extract_time_estimate(message)) is not None:
            parameters["time_estimate"] = estimate
            confidence += 0.2
            explanations.append(f"Extracted time estimate: {estimate} minutes")
        else:
            parameters["time_estimate"] = 60
            explanations.append("Using default 60-minute estimate")

        if keyword := inference.find_date_keyword(message):
            key = "due_date" if inference.keyword_hits(message, ("due", "by", "deadline")) else "scheduled_date"
            parameters[key] = keyword
            confidence += 0.1
            explanations.append(f"Extracted {key.replace('_', ' ')}: {keyword}")

        tags = sorted(set(inference.extract_hashtags(message)) | set(inference.extract_category_tags(message)))
        if tags:
            parameters["tags"] = tags
            confidence += 0.1
            explanations.append("Extracted tags from message")

        return InferredParameters(
            parameters=parameters,
            confidence=min(confidence, 1.0),
            needs_confirmation=needs_confirmation,
            alternatives=alternatives,
            explanation="; ".join(explanations),
        )

    def validate_parameters(self, parameters: dict[str, Any]) -> None:
        super().validate_parameters(parameters)
        _check_dates(parameters, ("due_date", "scheduled_date"))

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        start = time.perf_counter()
        now = context.current_time
        task = Task(
            title=parameters["title"].strip(),
            description=parameters.get("description"),
            priority=int(parameters.get("priority", 1)),
            time_estimate=int(parameters.get("time_estimate", 60)),
            due_date=inference.parse_date(parameters["due_date"], now) if parameters.get("due_date") else None,
            scheduled_date=(
                inference.parse_date(parameters["scheduled_date"], now)
                if parameters.get("scheduled_date")
                else None
            ),
            tags=list(parameters.get("tags") or []),
        )

        try:
            created = await self.task_repo.create(task)
        except RepositoryError as e:
            return ToolExecutionResult(
                success=False,
                message=f"❌ Failed to create task: {e}",
                execution_time_ms=elapsed_ms(start),
                error=str(e),
                suggestions=["Check the task details and try again"],
            )

        logger.info("Created task %s (%s)", created.id, created.title)
        suggestions = ["Start a timer for this task", "Add more details or tags"]
        if created.due_date is None:
            suggestions.append("Set a due date")
        return ToolExecutionResult(
            success=True,
            data={
                "task_id": created.id,
                "title": created.title,
                "priority": created.priority,
                "task": created.model_dump(mode="json"),
            },
            message=f"✅ Created task: '{created.title}'",
            execution_time_ms=elapsed_ms(start),
            suggestions=suggestions,
        )


class UpdateTaskTool(Tool):
    name = "update_task"
    description = "Update an existing task's status, priority, title, description, dates or estimate"

    UPDATE_FIELDS = (
        "title",
        "description",
        "status",
        "priority",
        "time_estimate",
        "due_date",
        "scheduled_date",
        "tags",
    )

    def __init__(self, task_repo: TaskRepository):
        self.task_repo = task_repo

    def capability(self) -> ToolCapability:
        return ToolCapability(
            name=self.name,
            description=self.description,
            required_parameters=[
                ParameterDefinition(
                    name="task_id",
                    param_type=ParameterType.STRING,
                    description="Id of the task to update",
                    inference_sources=["active_task", "task_titles", "recent_tasks"],
                ),
            ],
            optional_parameters=[
                ParameterDefinition(
                    name="title",
                    param_type=ParameterType.STRING,
                    description="New title",
                    validation=ParameterValidation(min_length=1, max_length=200),
                ),
                ParameterDefinition(
                    name="description",
                    param_type=ParameterType.STRING,
                    description="New description",
                    validation=ParameterValidation(max_length=1000),
                ),
                ParameterDefinition(
                    name="status",
                    param_type=ParameterType.STRING,
                    description="New status",
                    validation=ParameterValidation(allowed_values=STATUS_VALUES),
                    inference_sources=["status_keywords"],
                ),
                _priority_param("New priority (0=Low, 1=Medium, 2=High, 3=Urgent)"),
                ParameterDefinition(
                    name="time_estimate",
                    param_type=ParameterType.NUMBER,
                    description="New estimate in minutes",
                    validation=ParameterValidation(min=1, max=10080),
                ),
                _date_param("due_date", "New due date"),
                _date_param("scheduled_date", "New scheduled date"),
                ParameterDefinition(name="tags", param_type=ParameterType.ARRAY, description="Replacement tags"),
            ],
            required_permissions=[PermissionLevel.MODIFY_TASKS],
            category="Task Management",
            examples=[
                ToolExample(
                    user_request="Mark the quarterly report task as done",
                    parameters={"task_id": "<id>", "status": "completed"},
                    description="Completes a task matched by title",
                ),
            ],
        )

    async def find_target_task(self, context: ToolContext) -> str | None:
        text = context.user_message.lower()
        if context.active_task_id and inference.keyword_hits(text, ("this task", "current task")):
            return context.active_task_id
        try:
            tasks = await self.task_repo.find_all()
        except RepositoryError:
            logger.exception("Could not load tasks to match an update target")
            return None
        if match := inference.match_task_by_title(text, tasks):
            return match.id
        if context.recent_task_ids:
            return context.recent_task_ids[0]
        return next((t.id for t in tasks if t.is_open), None)

    def extract_updates(self, message: str) -> dict[str, Any]:
        text = message.lower()
        updates: dict[str, Any] = {}

        if inference.keyword_hits(text, ("complete", "completed", "done", "finished")):
            updates["status"] = "completed"
        elif inference.keyword_hits(text, ("start", "begin", "working on")):
            updates["status"] = "in_progress"
        elif inference.keyword_hits(text, ("cancel", "cancelled")):
            updates["status"] = "cancelled"
        elif inference.keyword_hits(text, ("pending", "todo")):
            updates["status"] = "pending"

        priority = inference.extract_priority(message)
        if priority is not None:
            updates["priority"] = priority

        title = inference.text_after(
            message, ("rename to", "change title to", "update title to", "call it", "title:")
        )
        if title:
            updates["title"] = title
        description = inference.text_after(
            message, ("description:", "details:", "add description", "update description", "notes:")
        )
        if description:
            updates["description"] = description
        if keyword := inference.find_date_keyword(message):
            updates["due_date"] = keyword
        if (estimate := inference.extract_time_estimate(message)) is not None:
            updates["time_estimate"] = estimate
        return updates

    async def infer_parameters(self, context: ToolContext) -> InferredParameters:
        parameters = self.extract_updates(context.user_message)
        explanations = [f"Detected update for {key}" for key in parameters]
        needs_confirmation: list[str] = []
        confidence = 0.0

        if task_id := await self.find_target_task(context):
            parameters["task_id"] = task_id
            confidence += 0.5
            explanations.insert(0, f"Found target task: {task_id}")
        else:
            needs_confirmation.append("task_id")
            explanations.insert(0, "Could not determine which task to update")

        confidence += 0.1 * (len(parameters) - ("task_id" in parameters))
        return InferredParameters(
            parameters=parameters,
            confidence=min(confidence, 1.0),
            needs_confirmation=needs_confirmation,
            explanation="; ".join(explanations),
        )

    def validate_parameters(self, parameters: dict[str, Any]) -> None:
        super().validate_parameters(parameters)
        if not any(parameters.get(field) is not None for field in self.UPDATE_FIELDS):
            raise ValidationError("At least one field must be updated")
        _check_dates(parameters, ("due_date", "scheduled_date"))

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        start = time.perf_counter()
        task_id = parameters["task_id"]
        now = context.current_time

        changes: dict[str, Any] = {}
        described: list[str] = []
        for field in self.UPDATE_FIELDS:
            value = parameters.get(field)
            if value is None:
                continue
            if field in ("due_date", "scheduled_date"):
                value = inference.parse_date(value, now)
                described.append(f"{field.replace('_', ' ')} to {value:%Y-%m-%d}")
            elif field == "status":
                value = TaskStatus(value)
                described.append(f"status to '{value}'")
            elif field == "priority":
                value = int(value)
                described.append(f"priority to {PRIORITY_NAMES[value]}")
            elif field == "time_estimate":
                value = int(value)
                described.append(f"time estimate to {value} minutes")
            elif field == "title":
                described.append(f"title to '{value}'")
            else:
                described.append(field)
            changes[field] = value

        try:
            existing = await self.task_repo.find_by_id(task_id)
            if existing is None:
                return ToolExecutionResult(
                    success=False,
                    message=f"❌ Task not found: {task_id}",
                    execution_time_ms=elapsed_ms(start),
                    error="Task not found",
                    suggestions=["List your tasks to find the right one"],
                )
            updated = await self.task_repo.update(task_id, changes)
        except RepositoryError as e:
            return ToolExecutionResult(
                success=False,
                message=f"❌ Failed to update task: {e}",
                execution_time_ms=elapsed_ms(start),
                error=str(e),
                suggestions=["Check the task id and try again"],
            )

        return ToolExecutionResult(
            success=True,
            data={
                "task_id": updated.id,
                "updated_fields": list(changes),
                "task": updated.model_dump(mode="json"),
            },
            message=f"✅ Updated **{updated.title}**: {_join_fields(described)}",
            execution_time_ms=elapsed_ms(start),
            suggestions=["Start a timer for this task"] if updated.is_open else [],
        )

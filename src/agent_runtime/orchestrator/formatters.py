"""Turn tool result data into the observation text the model reads next."""

from __future__ import annotations

import json
from typing import Any

MAX_LISTED_TASKS = 20

_SECTIONS = (
    ("pending", "**Pending:**"),
    ("in_progress", "**In Progress:**"),
    ("completed", "**Completed:**"),
)


def _dumps(data: Any) -> str:
    return json.dumps(data, default=str, ensure_ascii=False)


def format_task_list(tasks: list[dict[str, Any]]) -> str:
    """Markdown list of tasks grouped by status, first 20 only."""
    if not tasks:
        return "No tasks found"

    groups: dict[str, list[str]] = {key: [] for key, _ in _SECTIONS}
    for task in tasks[:MAX_LISTED_TASKS]:
        title = task.get("title")
        if not isinstance(title, str):
            continue
        status = task.get("status")
        # Anything unrecognised (cancelled, missing) is listed as pending.
        groups.get(status, groups["pending"]).append(title)

    header = f"Found {len(tasks)} tasks"
    if len(tasks) > MAX_LISTED_TASKS:
        header += f" (showing first {MAX_LISTED_TASKS})"
    sections = [
        "\n".join([heading, *(f"• {title}" for title in groups[key])])
        for key, heading in _SECTIONS
        if groups[key]
    ]
    return header + ":\n\n" + "\n\n".join(sections)


def format_tool_result(tool_name: str, data: Any) -> str:
    if not isinstance(data, dict):
        return f"Tool executed successfully: {_dumps(data)}"

    if tool_name == "get_tasks":
        tasks = data.get("tasks")
        if not isinstance(tasks, list):
            return f"Tool result: {_dumps(data)}"
        return format_task_list(tasks)

    if tool_name == "create_task":
        title = data.get("title")
        if isinstance(title, str):
            return f'Created task: "{title}"'
        return "Task created successfully"

    if tool_name == "timer_status":
        active = data.get("active")
        if not isinstance(active, bool):
            return f"Timer status: {_dumps(data)}"
        if active:
            return f'Timer is running for: "{data.get("task_title") or "Unknown task"}"'
        return "No timer is currently running"

    return f"Tool executed successfully: {_dumps(data)}"

"""Tool registry: registration, permission gating, relevance ranking, and dispatch."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from agent_runtime.errors import PermissionDeniedError, ToolNotFoundError, ValidationError
from agent_runtime.locks import RWLock
from agent_runtime.models.tools import (
    InferenceInfo,
    PermissionLevel,
    ToolCapability,
    ToolContext,
    ToolExecutionResult,
    ToolSuggestion,
    ToolUsageStats,
)
from agent_runtime.tools.base import Tool, elapsed_ms

if TYPE_CHECKING:
    from agent_runtime.tracking.execution_logger import ExecutionLogger

logger = logging.getLogger(__name__)

SUGGESTION_THRESHOLD = 0.3

# Hand-curated verb heuristics per tool name. Each entry is a list of
# alternatives; an alternative is a tuple of words that must all appear.
_VERB_HEURISTICS: dict[str, list[tuple[str, ...]]] = {
    "create_task": [("create",), ("add",), ("new task",), ("todo",)],
    "get_tasks": [("list",), ("show",), ("tasks",), ("what",)],
    "update_task": [("update",), ("change",), ("mark",), ("rename",), ("complete",)],
    "start_timer": [("start",), ("begin",), ("timer",), ("track time",)],
    "stop_timer": [("stop",), ("end",), ("finish", "timer")],
    "timer_status": [("how long",), ("timer", "status"), ("running",)],
    "productivity_analytics": [("analytics",), ("productivity",), ("stats",), ("analyze",)],
}

_CONTEXT_ARG_KEYS = ("user_message", "current_time")


def _description_keywords(description: str) -> list[str]:
    return [word for word in description.lower().split() if len(word) > 3]


def relevance(tool: Tool, context: ToolContext) -> tuple[float, str]:
    """Score how relevant ``tool`` is to the user's message, in [0, 1]."""
    message = context.user_message.lower()
    score = 0.0
    reasons: list[str] = []

    if tool.name in message:
        score += 0.8
        reasons.append(f"Tool name '{tool.name}' mentioned directly")

    for keyword in _description_keywords(tool.description):
        if keyword in message:
            score += 0.2
            reasons.append(f"Keyword '{keyword}' matches")

    for words in _VERB_HEURISTICS.get(tool.name, []):
        if all(word in message for word in words):
            score += 0.6
            reasons.append(f"'{' '.join(words)}' suggests {tool.name}")
            break

    return min(score, 1.0), "; ".join(reasons)


class ToolRegistry:
    """Owns the tools available to the model and dispatches calls to them.

    Tools are static after bootstrap; usage statistics are the only state
    that changes. Both sit behind a readers-writers lock that is never held
    across a tool call.
    """

    def __init__(
        self,
        permissions: Iterable[PermissionLevel] = (PermissionLevel.READ_ONLY,),
        execution_logger: ExecutionLogger | None = None,
    ) -> None:
        self.permissions = list(permissions)
        self.execution_logger = execution_logger
        self._tools: dict[str, Tool] = {}
        self._stats: dict[str, ToolUsageStats] = {}
        self._lock = RWLock()

    async def register(self, tool: Tool) -> None:
        async with self._lock.write():
            self._tools[tool.name] = tool
            self._stats[tool.name] = ToolUsageStats()
        logger.debug("Registered tool '%s'", tool.name)

    async def get_tool(self, name: str) -> Tool | None:
        async with self._lock.read():
            return self._tools.get(name)

    async def tool_names(self) -> list[str]:
        async with self._lock.read():
            return sorted(self._tools)

    async def available_tools(
        self, permissions: Iterable[PermissionLevel] | None = None
    ) -> list[str]:
        granted = list(self.permissions if permissions is None else permissions)
        async with self._lock.read():
            tools = list(self._tools.values())
        return sorted(t.name for t in tools if t.check_permissions(granted))

    async def get_capability(self, name: str) -> ToolCapability | None:
        tool = await self.get_tool(name)
        return tool.capability() if tool else None

    async def set_permissions(self, permissions: Iterable[PermissionLevel]) -> None:
        async with self._lock.write():
            self.permissions = list(permissions)

    async def get_usage_stats(self, name: str) -> ToolUsageStats | None:
        async with self._lock.read():
            stats = self._stats.get(name)
            return stats.model_copy(deep=True) if stats else None

    async def suggest_tools(self, context: ToolContext) -> list[ToolSuggestion]:
        """Rank permitted tools for the message. Same inputs give the same order."""
        async with self._lock.read():
            tools = [t for t in self._tools.values() if t.check_permissions(self.permissions)]

        suggestions: list[ToolSuggestion] = []
        for tool in sorted(tools, key=lambda t: t.name):
            score, reasoning = relevance(tool, context)
            if score <= SUGGESTION_THRESHOLD:
                continue
            inferred = await tool.infer_parameters(context)
            suggestions.append(
                ToolSuggestion(
                    tool_name=tool.name,
                    confidence=score * inferred.confidence,
                    relevance=score,
                    parameters=inferred,
                    reasoning=reasoning,
                )
            )
        suggestions.sort(key=lambda s: (-s.confidence, s.tool_name))
        return suggestions

    async def _resolve(self, name: str) -> Tool:
        async with self._lock.read():
            tool = self._tools.get(name)
            granted = list(self.permissions)
        if tool is None:
            raise ToolNotFoundError(name)
        if not tool.check_permissions(granted):
            required = [p.value for p in tool.capability().required_permissions]
            logger.warning("Permission denied for tool '%s' (requires %s)", name, required)
            raise PermissionDeniedError(name, required)
        return tool

    async def execute_smart(
        self,
        name: str,
        context: ToolContext,
        user_args: dict[str, Any] | None = None,
    ) -> ToolExecutionResult:
        """Run a tool, filling arguments the caller left out from the tool's own inference."""
        tool = await self._resolve(name)
        start = time.perf_counter()

        inferred = await tool.infer_parameters(context)
        if user_args:
            parameters = {**inferred.parameters, **user_args}
        else:
            parameters = dict(inferred.parameters)
        info = InferenceInfo(
            confidence=inferred.confidence,
            inferred_parameters=sorted(k for k in inferred.parameters if k not in (user_args or {})),
            needed_confirmation=inferred.needs_confirmation,
            explanation=inferred.explanation,
            alternatives_count=len(inferred.alternatives),
        )

        tool.validate_parameters(parameters)
        result = await self._run(tool, parameters, context, start)
        await self._log(tool.name, parameters, info, result, context)
        return result

    async def execute_direct(
        self,
        name: str,
        args: dict[str, Any],
        context: ToolContext | None = None,
    ) -> ToolExecutionResult:
        """Run a tool with exactly the given arguments. No inference."""
        tool = await self._resolve(name)
        start = time.perf_counter()

        parameters = dict(args)
        context = context or ToolContext()
        overrides = {key: parameters.pop(key) for key in _CONTEXT_ARG_KEYS if key in parameters}
        if overrides:
            try:
                context = ToolContext.model_validate({**context.model_dump(), **overrides})
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid context arguments for '{name}': {e}") from e

        tool.validate_parameters(parameters)
        result = await self._run(tool, parameters, context, start)
        await self._log(tool.name, parameters, None, result, context)
        return result

    async def _run(
        self, tool: Tool, parameters: dict[str, Any], context: ToolContext, start: float
    ) -> ToolExecutionResult:
        try:
            result = await tool.execute(parameters, context)
        except Exception:
            await self._update_stats(tool.name, parameters, elapsed_ms(start), success=False)
            raise
        await self._update_stats(tool.name, parameters, elapsed_ms(start), success=result.success)
        return result

    async def _update_stats(
        self, name: str, parameters: dict[str, Any], duration_ms: int, success: bool
    ) -> None:
        async with self._lock.write():
            stats = self._stats.setdefault(name, ToolUsageStats())
            stats.total_executions += 1
            if success:
                stats.successful_executions += 1
            previous_total = stats.avg_execution_time_ms * (stats.total_executions - 1)
            stats.avg_execution_time_ms = (previous_total + duration_ms) / stats.total_executions
            stats.last_used = datetime.now(UTC)
            for key in parameters:
                stats.common_parameters[key] = stats.common_parameters.get(key, 0) + 1

    async def _log(
        self,
        name: str,
        parameters: dict[str, Any],
        info: InferenceInfo | None,
        result: ToolExecutionResult,
        context: ToolContext,
    ) -> None:
        if self.execution_logger is None:
            return
        user_id = context.metadata.get("user_id")
        await self.execution_logger.log_execution(
            name, parameters, info, result, context, user_id=str(user_id) if user_id else None
        )

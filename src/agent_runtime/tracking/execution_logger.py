"""Per-execution tool logging, session performance tracking, and usage analytics."""

from __future__ import annotations

import json
import logging
from collections import Counter, defaultdict
from datetime import UTC, datetime, timedelta
from typing import Any

from agent_runtime.errors import RepositoryError
from agent_runtime.locks import RWLock
from agent_runtime.models.logs import (
    ErrorPattern,
    ExecutionLogFilter,
    ExecutionLogRecord,
    PerformanceClass,
    SessionToolStats,
    ToolPerformance,
    ToolReliability,
    ToolSequence,
    ToolUsageSummary,
    UsageAnalytics,
    UsagePatterns,
)
from agent_runtime.models.tools import InferenceInfo, ToolContext, ToolExecutionResult
from agent_runtime.repositories.base import LogRepository

logger = logging.getLogger(__name__)

ANALYTICS_EVERY = 100
ANALYTICS_WINDOW = timedelta(hours=24)
SLOW_EXECUTION_MS = 1000


def classify_performance(execution_time_ms: int) -> PerformanceClass:
    if execution_time_ms <= 100:
        return PerformanceClass.FAST
    if execution_time_ms <= 1000:
        return PerformanceClass.NORMAL
    if execution_time_ms <= 5000:
        return PerformanceClass.SLOW
    return PerformanceClass.VERY_SLOW


def classify_category(tool_name: str) -> str:
    name = tool_name.lower()
    if "task" in name:
        return "task_management"
    if "timer" in name:
        return "time_tracking"
    if any(word in name for word in ("analyze", "analytics", "stats")):
        return "analytics"
    if "get" in name or "list" in name:
        return "data_retrieval"
    if any(word in name for word in ("create", "update", "delete")):
        return "data_modification"
    return "general"


_ERROR_HINTS: list[tuple[tuple[str, ...], tuple[str, str]]] = [
    (
        ("not found", "missing"),
        ("Check if the referenced resource exists", "Verify the ID or name parameter is correct"),
    ),
    (
        ("permission", "unauthorized"),
        ("Check user permissions for this operation", "Ensure the user has the required access level"),
    ),
    (
        ("validation", "invalid"),
        ("Review the parameter values for correctness", "Check parameter types and formats"),
    ),
    (
        ("timeout", "connection"),
        ("Retry with backoff after a short delay", "Check system resources and network connectivity"),
    ),
    (
        ("database", "storage"),
        ("Check database connectivity and integrity", "Verify sufficient storage space is available"),
    ),
]

_TOOL_HINTS = {
    "update_task": ["Verify the task ID exists", "Check if the task is not already completed"],
    "start_timer": ["Ensure no other timer is currently running", "Check if a valid task is selected"],
    "stop_timer": ["Verify a timer is currently running", "Check timer session state"],
}


def recovery_suggestions(
    tool_name: str, result: ToolExecutionResult, parameters: dict[str, Any]
) -> list[str]:
    """Keyword-driven hints for a failed execution."""
    suggestions: list[str] = []
    error = (result.error or "").lower()
    for keywords, hints in _ERROR_HINTS:
        if any(k in error for k in keywords):
            suggestions.extend(hints)

    if tool_name == "create_task":
        if "title" not in parameters:
            suggestions.append("Ensure task title is provided")
        suggestions.append("Try simplifying the task description")
    else:
        suggestions.extend(_TOOL_HINTS.get(tool_name, ["Review the tool parameters and try again"]))
    return suggestions


def error_fix_suggestions(error_type: str) -> list[str]:
    lowered = error_type.lower()
    fixes: list[str] = []
    if "validation" in lowered:
        fixes += ["Improve parameter validation logic", "Add better error messages for validation failures"]
    if "not found" in lowered:
        fixes += ["Add existence checks before operations", "Improve error handling for missing resources"]
    if "timeout" in lowered:
        fixes += ["Increase timeout values for slow operations", "Add retry logic with exponential backoff"]
    return fixes or ["Review error handling logic", "Add more specific error messages"]


class PerformanceTracker:
    """Running per-session counters. Every update is constant time."""

    def __init__(self) -> None:
        self.total_executions = 0
        self.successful_executions = 0
        self.failed_executions = 0
        self.avg_execution_times: dict[str, float] = {}
        self.tool_usage_counts: dict[str, int] = {}
        self.error_patterns: dict[str, int] = {}
        self.session_start = datetime.now(UTC)
        self.last_execution: datetime | None = None

    def record(self, tool_name: str, result: ToolExecutionResult, timestamp: datetime) -> None:
        self.total_executions += 1
        self.last_execution = timestamp
        if result.success:
            self.successful_executions += 1
        else:
            self.failed_executions += 1
            if result.error:
                self.error_patterns[result.error] = self.error_patterns.get(result.error, 0) + 1

        count = self.tool_usage_counts.get(tool_name, 0) + 1
        self.tool_usage_counts[tool_name] = count
        previous = self.avg_execution_times.get(tool_name, 0.0)
        self.avg_execution_times[tool_name] = (previous * (count - 1) + result.execution_time_ms) / count

    @property
    def success_rate(self) -> float:
        """Percentage of successful executions, 0 when nothing ran."""
        if self.total_executions == 0:
            return 0.0
        return self.successful_executions / self.total_executions * 100

    def session_duration_minutes(self) -> float:
        end = self.last_execution or datetime.now(UTC)
        return (end - self.session_start).total_seconds() / 60


def _percentile_95(times: list[int]) -> int:
    ordered = sorted(times)
    index = int(len(ordered) * 0.95)
    return ordered[index] if index < len(ordered) else ordered[-1]


def build_usage_analytics(records: list[ExecutionLogRecord]) -> UsageAnalytics:
    """Summarise execution logs into a UsageAnalytics report."""
    now = datetime.now(UTC)
    records = sorted(records, key=lambda r: r.timestamp)
    total = len(records)

    counts: Counter[str] = Counter()
    times: dict[str, list[int]] = defaultdict(list)
    successes: Counter[str] = Counter()
    failures: dict[str, Counter[str]] = defaultdict(Counter)
    error_tools: dict[str, set[str]] = defaultdict(set)
    hours: Counter[int] = Counter()
    pairs: Counter[tuple[str, str]] = Counter()
    last_by_session: dict[str, str] = {}

    for record in records:
        counts[record.tool_name] += 1
        times[record.tool_name].append(record.execution_time_ms)
        hours[record.timestamp.hour] += 1
        if record.success:
            successes[record.tool_name] += 1
        elif record.error:
            failures[record.tool_name][record.error] += 1
            error_tools[record.error].add(record.tool_name)

        previous = last_by_session.get(record.session_id)
        if previous is not None:
            pairs[(previous, record.tool_name)] += 1
        last_by_session[record.session_id] = record.tool_name

    most_used = [
        ToolUsageSummary(tool_name=name, usage_count=count, percentage_of_total=count / total * 100)
        for name, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:10]
    ]
    reliability = sorted(
        (
            ToolReliability(
                tool_name=name,
                success_rate=successes[name] / count * 100,
                total_executions=count,
                successful_executions=successes[name],
                common_failure_reasons=[e for e, _ in failures[name].most_common(3)],
            )
            for name, count in counts.items()
        ),
        key=lambda r: (-r.success_rate, r.tool_name),
    )
    performance = sorted(
        (
            ToolPerformance(
                tool_name=name,
                avg_execution_time_ms=sum(values) / len(values),
                min_execution_time_ms=min(values),
                max_execution_time_ms=max(values),
                percentile_95_ms=_percentile_95(values),
            )
            for name, values in times.items()
        ),
        key=lambda p: (p.avg_execution_time_ms, p.tool_name),
    )

    error_counts = Counter({error: 0 for error in error_tools})
    for tool_failures in failures.values():
        error_counts.update(tool_failures)
    errors = [
        ErrorPattern(
            error_type=error,
            frequency=frequency,
            affected_tools=sorted(error_tools[error]),
            suggested_fixes=error_fix_suggestions(error),
        )
        for error, frequency in sorted(error_counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]

    patterns = UsagePatterns(
        peak_hours=[h for h, _ in sorted(hours.items(), key=lambda kv: (-kv[1], kv[0]))[:4]],
        common_sequences=[
            ToolSequence(tools=list(pair), frequency=frequency)
            for pair, frequency in sorted(pairs.items(), key=lambda kv: (-kv[1], kv[0]))[:5]
        ],
    )

    return UsageAnalytics(
        period_start=records[0].timestamp if records else now,
        period_end=records[-1].timestamp if records else now,
        most_used_tools=most_used,
        most_reliable_tools=reliability,
        performance_stats=performance,
        error_analysis=errors,
        usage_patterns=patterns,
        recommendations=optimization_recommendations(most_used, reliability, performance),
        total_executions=total,
        successful_executions=sum(successes.values()),
        avg_execution_time_ms=(
            sum(r.execution_time_ms for r in records) / total if total else 0.0
        ),
    )


def optimization_recommendations(
    most_used: list[ToolUsageSummary],
    reliability: list[ToolReliability],
    performance: list[ToolPerformance],
) -> list[str]:
    by_name = {p.tool_name: p for p in performance}
    recommendations: list[str] = []

    for usage in most_used[:5]:
        perf = by_name.get(usage.tool_name)
        if perf and perf.avg_execution_time_ms > 1000:
            recommendations.append(
                f"Optimize '{usage.tool_name}' tool - it's frequently used "
                f"({usage.usage_count} times) but slow ({perf.avg_execution_time_ms:.0f}ms avg)"
            )
    for stats in reliability:
        if stats.success_rate < 90 and stats.total_executions > 5:
            recommendations.append(
                f"Improve reliability of '{stats.tool_name}' tool - "
                f"success rate is {stats.success_rate:.1f}%"
            )
    if any(p.avg_execution_time_ms > 2000 for p in performance):
        recommendations.append("Consider implementing caching for slow operations")
    if any(r.success_rate < 95 for r in reliability):
        recommendations.append("Review error handling and add more robust validation")
    recommendations.append("Monitor tool usage patterns to identify optimization opportunities")
    return recommendations


class ExecutionLogger:
    """Writes a detailed log entry for every tool execution in one session.

    Persistence failures are logged and swallowed so that logging never
    breaks a tool call.
    """

    def __init__(self, log_repo: LogRepository, session_id: str) -> None:
        self.log_repo = log_repo
        self.session_id = session_id
        self.tracker = PerformanceTracker()
        self._lock = RWLock()

    async def log_execution(
        self,
        tool_name: str,
        parameters: dict[str, Any],
        inference_info: InferenceInfo | None,
        result: ToolExecutionResult,
        context: ToolContext,
        user_id: str | None = None,
    ) -> ExecutionLogRecord:
        timestamp = datetime.now(UTC)
        async with self._lock.write():
            self.tracker.record(tool_name, result, timestamp)
            total = self.tracker.total_executions

        performance = classify_performance(result.execution_time_ms)
        record = ExecutionLogRecord(
            session_id=self.session_id,
            tool_name=tool_name,
            parameters=json.dumps(parameters, default=str),
            inference_info=inference_info.model_dump_json() if inference_info else None,
            result=result.model_dump_json(),
            context=context.model_dump_json(),
            user_id=user_id,
            execution_time_ms=result.execution_time_ms,
            success=result.success,
            error=result.error,
            performance_class=performance,
            tool_category=classify_category(tool_name),
            metadata={
                "performance_class": performance.value,
                "success_class": (
                    "success" if result.success else "error" if result.error else "unknown_failure"
                ),
                "suggestion_count": len(result.suggestions),
            },
            recovery_suggestions=(
                None if result.success else recovery_suggestions(tool_name, result, parameters)
            ),
            timestamp=timestamp,
        )

        try:
            await self.log_repo.create_detailed_tool_execution_log(record)
        except RepositoryError:
            logger.exception("Failed to log tool execution for '%s'", tool_name)
            return record

        if result.execution_time_ms > SLOW_EXECUTION_MS or not result.success:
            self._performance_alert(tool_name, result)
        if total % ANALYTICS_EVERY == 0:
            await self.generate_analytics()
        return record

    def _performance_alert(self, tool_name: str, result: ToolExecutionResult) -> None:
        if not result.success:
            alert = "execution_failure"
        elif result.execution_time_ms > 5000:
            alert = "slow_execution"
        else:
            alert = "performance_warning"
        logger.warning(
            "Performance alert %s: tool=%s time=%dms success=%s error=%s session=%s",
            alert,
            tool_name,
            result.execution_time_ms,
            result.success,
            result.error,
            self.session_id,
        )

    async def generate_analytics(self) -> UsageAnalytics | None:
        """Build and store a report over the last 24 hours of logs."""
        since = datetime.now(UTC) - ANALYTICS_WINDOW
        try:
            records = await self.log_repo.find_tool_execution_logs(
                ExecutionLogFilter(start_time=since)
            )
            analytics = build_usage_analytics(records)
            await self.log_repo.create_tool_usage_analytics(analytics)
        except RepositoryError:
            logger.exception("Failed to generate usage analytics")
            return None
        logger.info("Stored usage analytics over %d executions", analytics.total_executions)
        return analytics

    async def snapshot(self) -> dict[str, Any]:
        async with self._lock.read():
            return {
                "total_executions": self.tracker.total_executions,
                "successful_executions": self.tracker.successful_executions,
                "failed_executions": self.tracker.failed_executions,
                "success_rate": self.tracker.success_rate,
                "avg_execution_times": dict(self.tracker.avg_execution_times),
                "error_patterns": dict(self.tracker.error_patterns),
            }

    async def get_session_statistics(self) -> SessionToolStats:
        return await self.log_repo.get_session_tool_stats(self.session_id)

    async def get_execution_logs(self, log_filter: ExecutionLogFilter) -> list[ExecutionLogRecord]:
        return await self.log_repo.find_tool_execution_logs(log_filter)

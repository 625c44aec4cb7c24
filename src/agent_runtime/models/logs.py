"""Execution log entries and the usage analytics derived from them."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class PerformanceClass(StrEnum):
    FAST = "fast"
    NORMAL = "normal"
    SLOW = "slow"
    VERY_SLOW = "very_slow"


class ExecutionLogRecord(BaseModel):
    """One tool execution as persisted through the LogRepository.

    The structured fields (parameters, inference info, result, context)
    are stored serialised, the way they are written to the log table.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    tool_name: str
    parameters: str
    inference_info: str | None = None
    result: str
    context: str
    user_id: str | None = None
    execution_time_ms: int
    success: bool
    error: str | None = None
    performance_class: PerformanceClass
    tool_category: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    recovery_suggestions: list[str] | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ExecutionLogFilter(BaseModel):
    session_id: str | None = None
    tool_name: str | None = None
    success: bool | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None
    limit: int | None = None


class SessionToolStats(BaseModel):
    session_id: str
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    avg_execution_time_ms: float = 0.0
    tools_used: dict[str, int] = Field(default_factory=dict)


class ToolUsageSummary(BaseModel):
    tool_name: str
    usage_count: int
    percentage_of_total: float


class ToolReliability(BaseModel):
    tool_name: str
    success_rate: float
    total_executions: int
    successful_executions: int
    common_failure_reasons: list[str] = Field(default_factory=list)


class ToolPerformance(BaseModel):
    tool_name: str
    avg_execution_time_ms: float
    min_execution_time_ms: int
    max_execution_time_ms: int
    percentile_95_ms: int


class ErrorPattern(BaseModel):
    error_type: str
    frequency: int
    affected_tools: list[str] = Field(default_factory=list)
    suggested_fixes: list[str] = Field(default_factory=list)


class ToolSequence(BaseModel):
    tools: list[str]
    frequency: int


class UsagePatterns(BaseModel):
    peak_hours: list[int] = Field(default_factory=list)
    common_sequences: list[ToolSequence] = Field(default_factory=list)


class UsageAnalytics(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    analytics_type: str = "session"
    period_start: datetime
    period_end: datetime
    most_used_tools: list[ToolUsageSummary] = Field(default_factory=list)
    most_reliable_tools: list[ToolReliability] = Field(default_factory=list)
    performance_stats: list[ToolPerformance] = Field(default_factory=list)
    error_analysis: list[ErrorPattern] = Field(default_factory=list)
    usage_patterns: UsagePatterns = Field(default_factory=UsagePatterns)
    recommendations: list[str] = Field(default_factory=list)
    total_executions: int = 0
    successful_executions: int = 0
    avg_execution_time_ms: float = 0.0

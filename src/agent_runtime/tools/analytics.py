"""Productivity analytics over recorded time sessions."""

from __future__ import annotations

import time
from collections import Counter
from datetime import timedelta
from typing import Any

from pydantic import BaseModel, Field

from agent_runtime.errors import RepositoryError, ValidationError
from agent_runtime.models.records import TimeSession, TimeStats
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
from agent_runtime.repositories.base import TimeTrackingRepository
from agent_runtime.tools import inference
from agent_runtime.tools.base import Tool, elapsed_ms

WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


class ProductivityAnalysis(BaseModel):
    stats: TimeStats
    peak_hour: int | None = None
    most_productive_day: str | None = None
    hourly_minutes: list[int] = Field(default_factory=lambda: [0] * 24)
    daily_minutes: dict[str, int] = Field(default_factory=dict)
    task_minutes: dict[str, int] = Field(default_factory=dict)
    insights: list[str] = Field(default_factory=list)


def analyze_sessions(sessions: list[TimeSession], stats: TimeStats) -> ProductivityAnalysis:
    """Distribute finished session minutes by hour, weekday and task, and derive insights."""
    analysis = ProductivityAnalysis(stats=stats)
    days: Counter[str] = Counter()
    tasks: Counter[str] = Counter()
    for session in sessions:
        if session.is_active:
            continue
        minutes = session.duration_minutes()
        if minutes <= 0:
            continue
        analysis.hourly_minutes[session.start_time.hour] += minutes
        days[WEEKDAYS[session.start_time.weekday()]] += minutes
        tasks[session.task_id] += minutes

    analysis.daily_minutes = dict(days)
    analysis.task_minutes = dict(tasks)

    if any(analysis.hourly_minutes):
        peak = max(range(24), key=lambda h: analysis.hourly_minutes[h])
        analysis.peak_hour = peak
        analysis.insights.append(f"Your most productive hour is around {peak}:00")
    if days:
        analysis.most_productive_day = days.most_common(1)[0][0]
        analysis.insights.append(f"You're most productive on {analysis.most_productive_day}s")

    average = stats.average_session_minutes
    if average > 0:
        if average > 90:
            analysis.insights.append("Your sessions are quite long - consider taking more breaks")
        elif average < 25:
            analysis.insights.append("Your sessions are short - try focusing for longer periods")
        else:
            analysis.insights.append("Your session length is well-balanced")

    if stats.average_productivity_score > 80:
        analysis.insights.append("Great focus! You have minimal break time")
    elif 0 < stats.average_productivity_score < 60:
        analysis.insights.append("Consider reducing break time to improve focus")
    return analysis


def productivity_suggestions(analysis: ProductivityAnalysis, context: ToolContext) -> list[str]:
    suggestions: list[str] = []
    now = context.current_time

    if analysis.peak_hour is not None:
        if now.hour == analysis.peak_hour:
            suggestions.append(
                "This is your peak productivity hour - great time to tackle important tasks!"
            )
        elif abs(now.hour - analysis.peak_hour) <= 1:
            suggestions.append("You're approaching your peak productivity time")

    if analysis.most_productive_day == WEEKDAYS[now.weekday()]:
        suggestions.append("Today is typically your most productive day - make the most of it!")

    average = analysis.stats.average_session_minutes
    if average > 120:
        suggestions.append("Consider breaking long sessions into 90-minute chunks with breaks")
    elif 0 < average < 20:
        suggestions.append("Try the Pomodoro technique: 25-minute focused sessions")

    if context.active_task_id and not context.active_timer_session_id:
        suggestions.append(
            "You have an active task but no timer running - start tracking your time!"
        )

    if not suggestions:
        suggestions.append("Keep up the great work with your time tracking!")
    return suggestions


class ProductivityAnalyticsTool(Tool):
    name = "productivity_analytics"
    description = "Analyze time tracking data for productivity insights, peak hours and patterns"

    def __init__(self, time_repo: TimeTrackingRepository):
        self.time_repo = time_repo

    def capability(self) -> ToolCapability:
        return ToolCapability(
            name=self.name,
            description=self.description,
            optional_parameters=[
                ParameterDefinition(
                    name="days",
                    param_type=ParameterType.NUMBER,
                    description="Number of days to analyze (default: 7)",
                    default_value=7,
                    validation=ParameterValidation(min=1, max=365),
                    inference_sources=["time_period_keywords"],
                ),
            ],
            required_permissions=[PermissionLevel.READ_ONLY],
            category="Analytics",
            examples=[
                ToolExample(
                    user_request="Show my productivity analytics",
                    parameters={"days": 7},
                    description="Shows 7-day productivity analysis",
                ),
                ToolExample(
                    user_request="Analyze my productivity for the last 30 days",
                    parameters={"days": 30},
                    description="Shows 30-day productivity analysis",
                ),
            ],
        )

    async def infer_parameters(self, context: ToolContext) -> InferredParameters:
        text = context.user_message.lower()
        confidence = 0.8
        if "30 days" in text or inference.keyword_hits(text, ("month", "monthly")):
            days, explanation = 30, "Analyzing last 30 days"
            confidence += 0.1
        elif "7 days" in text or inference.keyword_hits(text, ("week", "weekly")):
            days, explanation = 7, "Analyzing last 7 days"
            confidence += 0.1
        elif inference.keyword_hits(text, ("today",)):
            days, explanation = 1, "Analyzing today"
            confidence += 0.1
        else:
            days, explanation = 7, "Using default 7-day analysis period"
        return InferredParameters(
            parameters={"days": days}, confidence=confidence, explanation=explanation
        )

    def validate_parameters(self, parameters: dict[str, Any]) -> None:
        days = parameters.get("days")
        if isinstance(days, int | float) and not isinstance(days, bool) and not 1 <= days <= 365:
            raise ValidationError("Days must be between 1 and 365")
        super().validate_parameters(parameters)

    async def execute(self, parameters: dict[str, Any], context: ToolContext) -> ToolExecutionResult:
        start = time.perf_counter()
        days = int(parameters.get("days") or 7)
        period_end = context.current_time
        period_start = period_end - timedelta(days=days)

        try:
            stats = await self.time_repo.get_time_stats(period_start, period_end)
            sessions = await self.time_repo.find_sessions_between(period_start, period_end)
        except RepositoryError as e:
            return ToolExecutionResult(
                success=False,
                message=f"❌ Failed to analyze productivity: {e}",
                execution_time_ms=elapsed_ms(start),
                error=str(e),
                suggestions=["Try again", "Check if you have time tracking data"],
            )

        analysis = analyze_sessions(sessions, stats)
        total_hours = stats.total_time_minutes / 60
        data: dict[str, Any] = {
            "days_analyzed": days,
            "total_sessions": stats.total_sessions,
            "total_hours": round(total_hours, 2),
            "average_session_minutes": round(stats.average_session_minutes, 1),
            "productivity_score": round(stats.average_productivity_score, 1),
        }
        lines = [
            f"📊 **Productivity Analytics** (Last {days} days)",
            f"⏱️ Total time: {total_hours:.1f}h across {stats.total_sessions} sessions",
        ]
        if stats.average_session_minutes > 0:
            lines.append(f"📈 Average session: {stats.average_session_minutes:.0f} minutes")
        if stats.average_productivity_score > 0:
            lines.append(f"🎯 Focus score: {stats.average_productivity_score:.0f}%")
        if analysis.peak_hour is not None:
            data["peak_hour"] = analysis.peak_hour
            lines.append(f"🌟 Peak hour: {analysis.peak_hour}:00")
        if analysis.most_productive_day:
            data["most_productive_day"] = analysis.most_productive_day
        if analysis.insights:
            lines.append("💡 **Insights:**")
            lines.extend(f"• {insight}" for insight in analysis.insights)
        data["insights"] = analysis.insights

        return ToolExecutionResult(
            success=True,
            data=data,
            message="\n".join(lines),
            execution_time_ms=elapsed_ms(start),
            suggestions=productivity_suggestions(analysis, context),
        )

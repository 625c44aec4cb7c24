"""Tests for productivity analytics."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from agent_runtime.errors import ValidationError
from agent_runtime.models.records import Task, TimeSession, TimeStats
from agent_runtime.models.tools import ToolContext
from agent_runtime.storage.sqlite import SQLiteStore
from agent_runtime.tools.analytics import (
    ProductivityAnalyticsTool,
    analyze_sessions,
    productivity_suggestions,
)

MONDAY_9 = datetime(2025, 3, 10, 9, 0, tzinfo=UTC)


def _session(start: datetime, minutes: int) -> TimeSession:
    return TimeSession(task_id="t1", start_time=start, end_time=start + timedelta(minutes=minutes))


def test_analyze_sessions_finds_peaks() -> None:
    sessions = [
        _session(MONDAY_9, 60),
        _session(MONDAY_9 + timedelta(hours=1), 30),
        TimeSession(task_id="t2", start_time=MONDAY_9),
    ]
    stats = TimeStats(total_sessions=2, total_time_minutes=90, average_session_minutes=45)
    analysis = analyze_sessions(sessions, stats)

    assert analysis.peak_hour == 9
    assert analysis.most_productive_day == "Monday"
    assert analysis.task_minutes == {"t1": 90}
    assert "Your session length is well-balanced" in analysis.insights


def test_suggestions_at_peak_hour() -> None:
    analysis = analyze_sessions(
        [_session(MONDAY_9, 60)],
        TimeStats(total_sessions=1, total_time_minutes=60, average_session_minutes=60),
    )
    suggestions = productivity_suggestions(analysis, ToolContext(current_time=MONDAY_9))
    assert suggestions[0].startswith("This is your peak productivity hour")
    assert "Today is typically your most productive day - make the most of it!" in suggestions


def test_default_suggestion_without_data() -> None:
    analysis = analyze_sessions([], TimeStats())
    assert productivity_suggestions(analysis, ToolContext()) == [
        "Keep up the great work with your time tracking!"
    ]


@pytest.mark.parametrize(
    ("message", "days"),
    [
        ("analyze my productivity this month", 30),
        ("how was my week", 7),
        ("how did I do today", 1),
        ("show my productivity", 7),
    ],
)
@pytest.mark.asyncio
async def test_infers_period(message: str, days: int) -> None:
    inferred = await ProductivityAnalyticsTool(None).infer_parameters(ToolContext(user_message=message))
    assert inferred.parameters == {"days": days}


def test_days_out_of_range() -> None:
    tool = ProductivityAnalyticsTool(None)
    for days in (0, 366):
        with pytest.raises(ValidationError, match="Days must be between 1 and 365"):
            tool.validate_parameters({"days": days})
    tool.validate_parameters({"days": 365})


@pytest.mark.asyncio
async def test_execute_without_sessions(store: SQLiteStore) -> None:
    result = await ProductivityAnalyticsTool(store).execute({"days": 7}, ToolContext())
    assert result.success
    assert result.data["total_sessions"] == 0
    assert result.data["total_hours"] == 0
    assert result.message.startswith("📊 **Productivity Analytics** (Last 7 days)")


@pytest.mark.asyncio
async def test_execute_counts_finished_sessions(store: SQLiteStore) -> None:
    task = await store.create(Task(title="Focus"))
    session = await store.start_session(task.id)
    await store.stop_session(session.id)

    result = await ProductivityAnalyticsTool(store).execute({}, ToolContext())
    assert result.data["days_analyzed"] == 7
    assert result.data["total_sessions"] == 1

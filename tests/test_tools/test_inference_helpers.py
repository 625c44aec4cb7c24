"""Tests for the natural-language parameter heuristics."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from agent_runtime.models.records import Task
from agent_runtime.tools import inference

NOW = datetime(2025, 3, 12, 16, 45, tzinfo=UTC)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("this is URGENT", 3),
        ("an important call", 2),
        ("normal stuff", 1),
        ("a minor fix", 0),
        ("no hint here", None),
        ("highway robbery", None),
    ],
)
def test_extract_priority(text: str, expected: int | None) -> None:
    assert inference.extract_priority(text) == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("takes 2 hours", 120),
        ("about 45 min", 45),
        ("roughly 1h", 60),
        ("quick 15m job", 15),
        ("no duration", None),
    ],
)
def test_extract_time_estimate(text: str, expected: int | None) -> None:
    assert inference.extract_time_estimate(text) == expected


def test_parse_date_keywords_and_iso() -> None:
    assert inference.parse_date("today", NOW) == datetime(2025, 3, 12, tzinfo=UTC)
    assert inference.parse_date("Tomorrow", NOW) == datetime(2025, 3, 13, tzinfo=UTC)
    assert inference.parse_date("next week", NOW) == datetime(2025, 3, 19, tzinfo=UTC)
    assert inference.parse_date("2025-04-01", NOW) == datetime(2025, 4, 1, tzinfo=UTC)
    assert inference.parse_date("whenever", NOW) is None


def test_week_boundaries() -> None:
    assert inference.start_of_week(NOW) == datetime(2025, 3, 10, tzinfo=UTC)
    assert inference.end_of_day(NOW).hour == 23


def test_find_date_keyword() -> None:
    assert inference.find_date_keyword("due tomorrow please") == "tomorrow"
    assert inference.find_date_keyword("on 2025-05-02") == "2025-05-02"
    assert inference.find_date_keyword("todays news") is None


def test_quoted_text_ignores_apostrophes() -> None:
    assert inference.extract_quoted('add "Buy milk" now') == "Buy milk"
    assert inference.extract_quoted("add 'Buy milk' now") == "Buy milk"
    assert inference.extract_quoted("don't won't") is None


def test_text_after_marker() -> None:
    assert inference.text_after("Create task: Write docs. Then rest", ("create task:",)) == "Write docs"
    assert inference.text_after("nothing here", ("create task:",)) is None


def test_tags() -> None:
    assert inference.extract_hashtags("fix #Bug in #ui") == ["bug", "ui"]
    assert inference.extract_category_tags("client meeting about the bug") == [
        "work",
        "development",
    ]


def test_match_task_by_title() -> None:
    tasks = [Task(title="Quarterly report"), Task(title="Garden")]
    assert inference.match_task_by_title("finish the quarterly report", tasks) is tasks[0]
    assert inference.match_task_by_title("water the garden", tasks) is tasks[1]
    assert inference.match_task_by_title("nothing relevant", tasks) is None


def test_format_minutes() -> None:
    assert inference.format_minutes(45) == "45m"
    assert inference.format_minutes(135) == "2h 15m"
    assert inference.format_minutes(-3) == "0m"

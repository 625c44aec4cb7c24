"""Shared heuristics for pulling tool parameters out of natural language.

Every domain tool's ``infer_parameters`` is built from these helpers.
They are deliberately simple: substring checks, quoted text, hashtags,
and a few regular expressions for durations and dates.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, time, timedelta

from agent_runtime.models.records import Task

STOP_WORDS = frozenset(
    {
        "the", "and", "for", "with", "that", "this", "from", "about", "into", "task",
        "tasks", "timer", "start", "stop", "please", "my", "all", "are", "what", "show",
    }
)

_PRIORITY_WORDS: list[tuple[int, tuple[str, ...]]] = [
    (3, ("urgent", "critical", "asap")),
    (2, ("high priority", "important", "high")),
    (1, ("medium priority", "normal", "medium")),
    (0, ("low priority", "minor", "low")),
]

_DURATION_PATTERNS: list[tuple[re.Pattern, int]] = [
    (re.compile(r"(\d+)\s*(?:hours?|hrs?)\b"), 60),
    (re.compile(r"(\d+)\s*(?:minutes?|mins?)\b"), 1),
    (re.compile(r"\b(\d+)h\b"), 60),
    (re.compile(r"\b(\d+)m\b"), 1),
]

_ISO_DATE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")

_CATEGORY_KEYWORDS = {
    "work": ("work", "meeting", "project", "client", "office"),
    "personal": ("personal", "home", "family"),
    "urgent": ("urgent", "asap"),
    "research": ("research", "investigate", "study"),
    "development": ("code", "develop", "bug", "feature", "programming"),
}


def _has_word(text: str, phrase: str) -> bool:
    return re.search(rf"\b{re.escape(phrase)}\b", text) is not None


def extract_priority(text: str) -> int | None:
    """Map priority words to 0..3; None when the text names no priority."""
    lowered = text.lower()
    for level, words in _PRIORITY_WORDS:
        if any(_has_word(lowered, word) for word in words):
            return level
    return None


def extract_time_estimate(text: str) -> int | None:
    """Duration in minutes from phrases like "2 hours", "30 min", "1h"."""
    lowered = text.lower()
    for pattern, multiplier in _DURATION_PATTERNS:
        match = pattern.search(lowered)
        if match:
            return int(match.group(1)) * multiplier
    return None


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo or UTC)


def end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.max, tzinfo=moment.tzinfo or UTC)


def start_of_week(moment: datetime) -> datetime:
    return start_of_day(moment - timedelta(days=moment.weekday()))


def find_date_keyword(text: str) -> str | None:
    """The first relative or ISO date mentioned in ``text``."""
    lowered = text.lower()
    for keyword in ("today", "tomorrow", "next week"):
        if _has_word(lowered, keyword):
            return keyword
    match = _ISO_DATE.search(lowered)
    return match.group(1) if match else None


def parse_date(value: str, now: datetime) -> datetime | None:
    """Resolve ``today|tomorrow|next week|YYYY-MM-DD`` (or a full ISO timestamp)."""
    lowered = value.strip().lower()
    if lowered == "today":
        return start_of_day(now)
    if lowered == "tomorrow":
        return start_of_day(now + timedelta(days=1))
    if lowered == "next week":
        return start_of_day(now + timedelta(days=7))
    try:
        parsed = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def extract_hashtags(text: str) -> list[str]:
    return [tag.lower() for tag in re.findall(r"#(\w+)", text)]


def extract_category_tags(text: str) -> list[str]:
    lowered = text.lower()
    return [
        category
        for category, words in _CATEGORY_KEYWORDS.items()
        if any(_has_word(lowered, word) for word in words)
    ]


def extract_quoted(text: str) -> str | None:
    """Text inside double quotes, else inside single quotes that are not apostrophes."""
    match = re.search(r'"([^"]+)"', text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    match = re.search(r"(?<!\w)'([^']+)'(?!\w)", text)
    if match and match.group(1).strip():
        return match.group(1).strip()
    return None


def text_after(text: str, markers: tuple[str, ...], min_length: int = 3) -> str | None:
    """The phrase following the first marker found, cut at sentence punctuation."""
    lowered = text.lower()
    for marker in markers:
        index = lowered.find(marker)
        if index == -1:
            continue
        remainder = text[index + len(marker):].strip()
        quoted = extract_quoted(remainder)
        if quoted and remainder.startswith(("'", '"')):
            return quoted
        phrase = re.split(r"[.!?\n]", remainder, maxsplit=1)[0].strip(" :,-")
        if len(phrase) >= min_length:
            return phrase
    return None


def match_task_by_title(text: str, tasks: list[Task]) -> Task | None:
    """Find the task the message refers to: full title first, then a shared word."""
    lowered = text.lower()
    for task in tasks:
        if task.title and task.title.lower() in lowered:
            return task

    message_words = set(re.findall(r"\w+", lowered)) - STOP_WORDS
    for task in tasks:
        title_words = {w for w in re.findall(r"\w+", task.title.lower()) if len(w) >= 3}
        if title_words & message_words:
            return task
    return None


def format_minutes(minutes: int) -> str:
    hours, mins = divmod(max(minutes, 0), 60)
    if hours:
        return f"{hours}h {mins}m"
    return f"{mins}m"


def keyword_hits(text: str, keywords: tuple[str, ...]) -> bool:
    lowered = text.lower()
    return any(_has_word(lowered, word) for word in keywords)

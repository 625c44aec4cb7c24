"""Tests for the trace sink."""

from __future__ import annotations

import pytest

from agent_runtime.errors import LLMError, RepositoryError
from agent_runtime.models.trace import Trace
from agent_runtime.storage.sqlite import SQLiteStore
from agent_runtime.tracking.interactions import InteractionLogger


def _trace(request: str) -> Trace:
    trace = Trace(user_request=request)
    trace.finalize(f"answer to {request}")
    return trace


@pytest.mark.asyncio
async def test_recent_traces_are_bounded_and_newest_first() -> None:
    sink = InteractionLogger(max_traces=2)
    traces = [_trace(f"q{i}") for i in range(3)]
    for trace in traces:
        await sink.log_trace(trace)

    assert [t.user_request for t in sink.recent_traces()] == ["q2", "q1"]
    assert sink.get_trace(traces[0].id) is None
    assert sink.get_trace(traces[2].id) is traces[2]


@pytest.mark.asyncio
async def test_traces_are_persisted(store: SQLiteStore) -> None:
    sink = InteractionLogger(store)
    trace = _trace("what now")
    await sink.log_trace(trace)

    stored = await store.get_trace(trace.id)
    assert stored is not None
    assert stored.final_response == "answer to what now"


class _BrokenStore(SQLiteStore):
    async def save_trace(self, trace: Trace) -> None:
        raise RepositoryError("read-only database")


@pytest.mark.asyncio
async def test_persistence_failure_is_not_raised(tmp_path) -> None:
    sink = InteractionLogger(_BrokenStore(tmp_path / "unused.db"))
    trace = _trace("q")
    await sink.log_trace(trace)
    assert sink.recent_traces() == [trace]


@pytest.mark.asyncio
async def test_raw_interactions_grouped_by_trace() -> None:
    sink = InteractionLogger()
    await sink.log_raw_llm_interaction("t1", 1, "prompt one", "reply one", "local")
    await sink.log_raw_llm_interaction("t2", 1, "other", "other", "gemini")
    await sink.log_raw_llm_interaction("t1", 2, "prompt two", "reply two", "local")

    turns = sink.interactions_for("t1")
    assert [i.turn for i in turns] == [1, 2]
    assert turns[1].response == "reply two"


@pytest.mark.asyncio
async def test_errors_are_recorded() -> None:
    sink = InteractionLogger()
    await sink.log_error("s1", "first", LLMError("boom"))
    await sink.log_error("s2", "second", RepositoryError("disk"))

    errors = sink.recent_errors()
    assert [e.session_id for e in errors] == ["s2", "s1"]
    assert errors[1].error_type == "llm_error"
    assert errors[1].error == "boom"
    assert sink.recent_errors(limit=1)[0].message == "second"

"""Tests for request validation and trace serialization."""

from __future__ import annotations

import pytest

from agent_runtime.errors import InvalidRequestError
from agent_runtime.models.requests import AgentRequest
from agent_runtime.models.trace import Step, StepKind, ToolInvocation, ToolOutcome, Trace


def test_message_at_limit_is_accepted() -> None:
    AgentRequest(message="a" * 100_000).ensure_valid()


def test_message_over_limit_is_rejected() -> None:
    with pytest.raises(InvalidRequestError, match="Message too long"):
        AgentRequest(message="a" * 100_001).ensure_valid()


@pytest.mark.parametrize("message", ["", "   ", "\n\t"])
def test_blank_message_is_rejected(message: str) -> None:
    with pytest.raises(InvalidRequestError, match="Message cannot be empty"):
        AgentRequest(message=message).ensure_valid()


def test_session_id_rules() -> None:
    AgentRequest(message="hi", session_id="s" * 255).ensure_valid()
    with pytest.raises(InvalidRequestError, match="Session ID too long"):
        AgentRequest(message="hi", session_id="s" * 256).ensure_valid()
    with pytest.raises(InvalidRequestError, match="Session ID cannot be empty"):
        AgentRequest(message="hi", session_id="  ").ensure_valid()


def test_model_preference_must_be_known() -> None:
    AgentRequest(message="hi", model_preference="gemini").ensure_valid()
    AgentRequest(message="hi", model_preference="local").ensure_valid()
    with pytest.raises(InvalidRequestError) as exc_info:
        AgentRequest(message="hi", model_preference="gpt").ensure_valid()
    assert "Valid options: gemini, local" in exc_info.value.message
    assert exc_info.value.to_response()["code"] == "INVALID_REQUEST"


def test_trace_finalize_only_once() -> None:
    trace = Trace(user_request="hello")
    trace.finalize("first")
    first_completed_at = trace.completed_at
    trace.finalize("second")

    assert trace.completed
    assert trace.final_response == "first"
    assert trace.completed_at == first_completed_at
    assert trace.completed_at > trace.started_at


def test_trace_json_round_trip_keeps_steps() -> None:
    trace = Trace(user_request="list tasks")
    call = ToolInvocation(name="get_tasks", args={"filter": "today"})
    trace.add_step(Step(kind=StepKind.ACTION, content="Action: get_tasks", tool_call=call))
    trace.add_step(
        Step(
            kind=StepKind.OBSERVATION,
            content="Observation: No tasks found",
            tool_call=call,
            tool_result=ToolOutcome(success=True, data={"tasks": []}, message="No tasks found"),
        )
    )
    trace.finalize("Answer: nothing today")

    restored = Trace.model_validate_json(trace.model_dump_json())
    assert restored == trace
    assert [s.kind for s in restored.steps] == [StepKind.ACTION, StepKind.OBSERVATION]
    assert restored.last_successful_outcome().data == {"tasks": []}

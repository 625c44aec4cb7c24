"""Tests for the ReAct loop, action parsing and trace diagnostics."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest
from conftest import ScriptedProvider

from agent_runtime.config import OrchestratorConfig
from agent_runtime.errors import LLMError
from agent_runtime.models.records import Task
from agent_runtime.models.trace import Step, StepKind, ToolOutcome, Trace
from agent_runtime.orchestrator.react import (
    ReActOrchestrator,
    build_context_string,
    build_initial_prompt,
    parse_action_line,
)
from agent_runtime.storage.sqlite import SQLiteStore
from agent_runtime.tools import build_default_registry
from agent_runtime.tracking import InteractionLogger


@pytest.fixture
def orchestrator() -> ReActOrchestrator:
    return ReActOrchestrator(OrchestratorConfig(max_turns=5))


# --- action parsing ---


@pytest.mark.parametrize(
    ("completion", "name", "args"),
    [
        ('Action: get_tasks: {"filter": "today"}', "get_tasks", {"filter": "today"}),
        ('Action: create_task with args: {"title": "A: B"}', "create_task", {"title": "A: B"}),
        ("Action: timer_status", "timer_status", {}),
        ("Action: stop_timer: {}", "stop_timer", {}),
        ("Action: get_tasks: not json", "get_tasks", {"input": "not json"}),
        ("Action: get_tasks: [1, 2]", "get_tasks", {"input": "[1, 2]"}),
        ("Thought: hmm\n  Action: start_timer: {}\nPAUSE", "start_timer", {}),
        ("Action:   \nAction: stop_timer: {}", "stop_timer", {}),
    ],
)
def test_parse_action_line(completion: str, name: str, args: dict) -> None:
    call = parse_action_line(completion)
    assert call is not None
    assert call.name == name
    assert call.args == args


@pytest.mark.parametrize(
    "completion",
    ["Answer: all done", "I might take an Action: later", "", "Action:"],
)
def test_parse_action_line_without_directive(completion: str) -> None:
    assert parse_action_line(completion) is None


def test_initial_prompt_mentions_date_and_tools() -> None:
    prompt = build_initial_prompt("List tasks", datetime(2025, 3, 10, 9, 5, tzinfo=UTC))
    assert 'The user has asked: "List tasks"' in prompt
    assert "Date: 2025-03-10 (Monday)" in prompt
    assert "Time: 09:05 UTC" in prompt
    for tool in ("get_tasks", "create_task", "update_task", "start_timer", "stop_timer",
                 "timer_status", "productivity_analytics"):
        assert f"- {tool}:" in prompt


def test_context_string() -> None:
    assert build_context_string([]) == "No previous steps."
    steps = [
        Step(kind=StepKind.FINAL_ANSWER, content="done"),
        Step(
            kind=StepKind.OBSERVATION,
            content="Observation: ok",
            tool_result=ToolOutcome(success=True, message="ok"),
        ),
    ]
    assert build_context_string(steps) == (
        "Step 1: Final Answer - done\nStep 2: Observation - Observation: ok\n  Result: ok\n"
    )


# --- end-to-end loop ---


@pytest.mark.asyncio
async def test_list_empty_tasks(store: SQLiteStore, orchestrator: ReActOrchestrator) -> None:
    registry = await build_default_registry(store, store)
    provider = ScriptedProvider(
        [
            'Thought: I need today\'s tasks.\nAction: get_tasks: {"filter":"today"}\nPAUSE',
            "Answer: You don't have any tasks scheduled for today. Your schedule is clear!",
        ]
    )

    trace = await orchestrator.process_request("List tasks for today", provider, registry)

    assert trace.completed
    assert trace.iterations == 2
    assert [s.kind for s in trace.steps] == [
        StepKind.THOUGHT,
        StepKind.ACTION,
        StepKind.OBSERVATION,
        StepKind.ACTION,
    ]
    observation = trace.steps_of(StepKind.OBSERVATION)[0]
    assert observation.tool_call.name == "get_tasks"
    assert observation.tool_result.success
    assert observation.tool_result.data["tasks"] == []
    assert observation.content == "Observation: No tasks found"
    assert "any tasks" in trace.final_response
    assert "today" in trace.final_response
    assert provider.prompts[1].startswith("You successfully retrieved the task data.")
    assert trace.total_duration_ms is not None


@pytest.mark.asyncio
async def test_create_task(store: SQLiteStore, orchestrator: ReActOrchestrator) -> None:
    registry = await build_default_registry(store, store)
    provider = ScriptedProvider(
        [
            'Action: create_task: {"title":"Hello World","scheduled_date":"today"}',
            "Answer: Successfully created the task 'Hello World' for today.",
        ]
    )

    trace = await orchestrator.process_request(
        'Create a new task: "Hello World" for today', provider, registry
    )

    outcome = trace.steps_of(StepKind.OBSERVATION)[0].tool_result
    assert outcome.success
    assert outcome.data["task"]["title"] == "Hello World"
    assert outcome.message == 'Created task: "Hello World"'
    assert provider.prompts[1] == 'Observation: Created task: "Hello World"\n\nNow provide your Answer:'
    assert "Hello World" in trace.final_response
    assert [t.title for t in await store.find_all()] == ["Hello World"]


@pytest.mark.asyncio
async def test_forced_stop_after_max_turns(orchestrator: ReActOrchestrator) -> None:
    completion = "I am still weighing which Action: fits best."
    provider = ScriptedProvider([completion])

    trace = await orchestrator.process_request("help", provider)

    assert trace.completed
    assert trace.iterations == 5
    assert trace.final_response == completion
    assert len(trace.steps_of(StepKind.ACTION)) == 5
    assert len(provider.prompts) == 5


@pytest.mark.asyncio
async def test_plain_text_ends_after_third_turn(orchestrator: ReActOrchestrator) -> None:
    provider = ScriptedProvider(["Let me think about that."])
    trace = await orchestrator.process_request("help", provider)

    assert trace.completed
    assert trace.iterations == 3
    assert trace.final_response == "Let me think about that."
    assert provider.prompts[1] == "Let me think about that."


@pytest.mark.asyncio
async def test_tool_failure_becomes_observation(
    store: SQLiteStore, orchestrator: ReActOrchestrator
) -> None:
    registry = await build_default_registry(store, store)
    provider = ScriptedProvider(
        [
            'Action: update_task: {"task_id": "nope", "title": "x"}',
            "Answer: I could not find that task.",
        ]
    )
    trace = await orchestrator.process_request("rename nope", provider, registry)

    observation = trace.steps_of(StepKind.OBSERVATION)[0]
    assert observation.content == "Observation: Error executing update_task: Task not found"
    assert not observation.tool_result.success
    assert observation.tool_result.error == "Task not found"
    assert trace.completed


@pytest.mark.asyncio
async def test_unknown_tool_becomes_observation(
    store: SQLiteStore, orchestrator: ReActOrchestrator
) -> None:
    registry = await build_default_registry(store, store)
    provider = ScriptedProvider(["Action: teleport: {}", "Answer: That tool does not exist."])
    trace = await orchestrator.process_request("teleport me", provider, registry)

    observation = trace.steps_of(StepKind.OBSERVATION)[0]
    assert observation.content == "Observation: Error executing teleport: Tool 'teleport' not found"
    assert not observation.tool_result.success


@pytest.mark.asyncio
async def test_without_registry(orchestrator: ReActOrchestrator) -> None:
    provider = ScriptedProvider(["Action: get_tasks: {}", "Answer: no tools here"])
    trace = await orchestrator.process_request("list", provider)

    assert provider.prompts[1] == "Observation: No tools available"
    assert trace.steps_of(StepKind.OBSERVATION) == []
    assert trace.final_response == "Answer: no tools here"


@pytest.mark.asyncio
async def test_recovers_answer_from_last_tool_result(
    store: SQLiteStore, orchestrator: ReActOrchestrator
) -> None:
    await store.create(Task(title="Water plants"))
    registry = await build_default_registry(store, store)
    provider = ScriptedProvider(["Action: get_tasks: {}"])

    trace = await orchestrator.process_request("show tasks", provider, registry)

    assert trace.completed
    assert trace.iterations == 5
    assert trace.final_response.startswith("Here are your tasks:\n\nFound 1 tasks:")
    assert "• Water plants" in trace.final_response


@pytest.mark.asyncio
async def test_provider_error_propagates(orchestrator: ReActOrchestrator) -> None:
    with pytest.raises(LLMError):
        await orchestrator.process_request("hi", ScriptedProvider(fail_times=1))


@pytest.mark.asyncio
async def test_sink_receives_trace_instead_of_logger() -> None:
    interaction_logger = InteractionLogger()
    orchestrator = ReActOrchestrator(interaction_logger=interaction_logger)
    received: list[Trace] = []

    async def sink(trace: Trace) -> None:
        received.append(trace)

    trace = await orchestrator.process_request("hi", ScriptedProvider(["Answer: hello"]), sink=sink)
    assert received == [trace]
    assert interaction_logger.recent_traces() == []
    assert len(interaction_logger.interactions_for(trace.id)) == 1


@pytest.mark.asyncio
async def test_logger_keeps_trace_and_raw_turns() -> None:
    interaction_logger = InteractionLogger()
    orchestrator = ReActOrchestrator(interaction_logger=interaction_logger)
    provider = ScriptedProvider(["thinking", "Answer: done"], name="gemini")

    trace = await orchestrator.process_request("hi", provider)

    assert interaction_logger.get_trace(trace.id) is trace
    turns = interaction_logger.interactions_for(trace.id)
    assert [t.turn for t in turns] == [1, 2]
    assert turns[0].provider == "gemini"
    assert turns[1].response == "Answer: done"


class _CancellingProvider(ScriptedProvider):
    async def generate(self, prompt, options=None):
        if self.prompts:
            raise asyncio.CancelledError()
        return await super().generate(prompt, options)


@pytest.mark.asyncio
async def test_cancellation_emits_partial_trace(
    store: SQLiteStore, orchestrator: ReActOrchestrator
) -> None:
    await store.create(Task(title="Water plants"))
    registry = await build_default_registry(store, store)
    received: list[Trace] = []

    async def sink(trace: Trace) -> None:
        received.append(trace)

    with pytest.raises(asyncio.CancelledError):
        await orchestrator.process_request(
            "show tasks", _CancellingProvider(["Action: get_tasks: {}"]), registry, sink=sink
        )

    trace = received[0]
    assert not trace.completed
    assert trace.metadata["cancelled"] is True
    assert "Water plants" in trace.final_response


# --- diagnostics ---


@pytest.mark.asyncio
async def test_debug_info_and_quality_score(
    store: SQLiteStore, orchestrator: ReActOrchestrator
) -> None:
    registry = await build_default_registry(store, store)
    provider = ScriptedProvider(
        [
            'Thought: check today.\nAction: get_tasks: {"filter":"today"}',
            "Answer: Nothing scheduled for today.",
        ]
    )
    trace = await orchestrator.process_request("List tasks for today", provider, registry)

    info = orchestrator.extract_debug_info(trace)
    assert info["total_iterations"] == 2
    assert info["step_breakdown"] == {"thought": 1, "action": 2, "observation": 1}
    assert info["tool_calls"] == 1
    assert info["successful_tools"] == 1
    assert info["failed_tools"] == 0
    assert info["completion_status"] == "completed_successfully"
    assert info["reasoning_quality_score"] == 90


def test_processing_error_closes_trace(orchestrator: ReActOrchestrator) -> None:
    trace = Trace(user_request="hi")
    orchestrator.handle_processing_error(trace, ValueError("bad input"))

    assert trace.completed
    assert trace.steps[-1].kind == StepKind.ERROR
    assert trace.steps[-1].content == "Error occurred during processing: bad input"
    assert trace.final_response == (
        "I encountered an error while processing your request: bad input"
    )
    assert orchestrator.extract_debug_info(trace)["completion_status"] == "completed_with_errors"
    assert orchestrator.reasoning_quality_score(trace) == 35


def test_quality_score_bounds(orchestrator: ReActOrchestrator) -> None:
    assert orchestrator.reasoning_quality_score(Trace(user_request="hi")) == 0
    long_trace = Trace(user_request="hi", iterations=9)
    long_trace.add_step(Step(kind=StepKind.ACTION, content="x"))
    for _ in range(3):
        long_trace.add_step(Step(kind=StepKind.ERROR, content="boom"))
    assert orchestrator.reasoning_quality_score(long_trace) == 0

"""ReAct orchestrator: drives a provider through Thought/Action/Observation turns.

Tool calls are only ever taken from explicit ``Action:`` lines in the model's
completion. The loop ends when the model writes ``Answer:``, when it stops
asking for tools after the second turn, or when the turn limit is reached.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from agent_runtime.config import OrchestratorConfig
from agent_runtime.models.providers import GenerationOptions
from agent_runtime.models.tools import ToolContext
from agent_runtime.models.trace import Step, StepKind, ToolInvocation, ToolOutcome, Trace
from agent_runtime.orchestrator.formatters import format_tool_result
from agent_runtime.providers.base import Provider
from agent_runtime.tools.base import elapsed_ms

if TYPE_CHECKING:
    from agent_runtime.tools.registry import ToolRegistry
    from agent_runtime.tracking.interactions import InteractionLogger

logger = logging.getLogger(__name__)

TraceSink = Callable[[Trace], Awaitable[None]]

FORCED_STOP_MESSAGE = "I apologize, but I couldn't complete your request. Please try again."
NO_RESULT_MESSAGE = "I couldn't complete the task."
EMPTY_RESPONSE_MESSAGE = (
    "I apologize, but I couldn't process your request properly. Please try again."
)

_ACTION_PREFIX = "Action:"
_ANSWER_TOKEN = "Answer:"
_WITH_ARGS = " with args:"
_LISTING_WORDS = ("list", "show", "get")

_INITIAL_PROMPT = """You are a helpful task management assistant. The user has asked: "{request}"

Current Context:
- Date: {date} ({weekday})
- Time: {time}

Your job is to help with this specific request. Follow this pattern:

1. Think about what the user needs
2. If you need to use a tool, write one line in one of these forms:
   Action: tool_name: {{"arg": "value"}}
   Action: tool_name with args: {{"arg": "value"}}
   Use {{}} when the tool needs no arguments.
3. If you have information to answer, write: Answer: your response

Available tools:
- get_tasks: List/show tasks (args: {{}} or {{"filter": "today"}})
- create_task: Create a new task (args: {{"title": "task name"}})
- update_task: Update an existing task (args: {{"task_id": "id", "title": "new title"}})
- start_timer: Start time tracking (args: {{}} or {{"task_id": "id"}})
- stop_timer: Stop time tracking (use empty args {{}})
- timer_status: Check timer status (use empty args {{}})
- productivity_analytics: Summarise tracked time (args: {{"days": 7}})

IMPORTANT:
- If they want to see/list/show tasks: Use get_tasks tool
- If they want to create/add a task: Use create_task tool
- Be direct and helpful
- Don't give generic responses like "I'm ready to help"

For the request: "{request}", what should you do?"""


def build_initial_prompt(request: str, now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return _INITIAL_PROMPT.format(
        request=request,
        date=now.strftime("%Y-%m-%d"),
        weekday=now.strftime("%A"),
        time=now.strftime("%H:%M UTC"),
    )


def _parse_args(raw: str) -> dict[str, Any]:
    if not raw or raw == "{}":
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return {"input": raw}
    if not isinstance(parsed, dict):
        return {"input": raw}
    return parsed


def parse_action_line(completion: str) -> ToolInvocation | None:
    """Return the first ``Action:`` directive in ``completion``, if any.

    Accepts ``Action: name: {json}``, ``Action: name with args: {json}`` and a
    bare ``Action: name``. Arguments that are not a JSON object are passed
    through as ``{"input": raw}``.
    """
    for line in completion.splitlines():
        line = line.strip()
        if not line.startswith(_ACTION_PREFIX):
            continue
        body = line[len(_ACTION_PREFIX) :].strip()
        if _WITH_ARGS in body:
            name, _, raw_args = body.partition(_WITH_ARGS)
        elif ":" in body:
            name, _, raw_args = body.partition(":")
        else:
            name, raw_args = body, ""
        name = name.strip()
        if not name:
            continue
        return ToolInvocation(name=name, args=_parse_args(raw_args.strip()))
    return None


def _extract_thought(completion: str) -> str | None:
    thoughts = [
        line.strip()[len("Thought:") :].strip()
        for line in completion.splitlines()
        if line.strip().startswith("Thought:")
    ]
    thoughts = [t for t in thoughts if t]
    return " ".join(thoughts) if thoughts else None


def _is_listing_request(request: str) -> bool:
    lowered = request.lower()
    return any(word in lowered for word in _LISTING_WORDS)


def build_context_string(steps: list[Step]) -> str:
    if not steps:
        return "No previous steps."
    lines: list[str] = []
    for i, step in enumerate(steps, start=1):
        lines.append(f"Step {i}: {step.kind.value.replace('_', ' ').title()} - {step.content}")
        if step.tool_result is not None:
            lines.append(f"  Result: {step.tool_result.message}")
    return "\n".join(lines) + "\n"


def recover_response(trace: Trace) -> str:
    """Best available answer for a trace whose loop ended without one."""
    outcome = trace.last_successful_outcome()
    if outcome is not None:
        if "Found" in outcome.message and "tasks" in outcome.message:
            return f"Here are your tasks:\n\n{outcome.message}"
        response = outcome.message
    else:
        last = trace.steps[-1].content if trace.steps else ""
        response = last if last.strip() else NO_RESULT_MESSAGE
    return response if response.strip() else EMPTY_RESPONSE_MESSAGE


class ReActOrchestrator:
    """Runs one request through the ReAct loop and produces its Trace."""

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        interaction_logger: InteractionLogger | None = None,
    ) -> None:
        self.config = config or OrchestratorConfig()
        self.interaction_logger = interaction_logger

    @property
    def max_turns(self) -> int:
        return self.config.max_turns

    async def process_request(
        self,
        request: str,
        provider: Provider,
        registry: ToolRegistry | None = None,
        sink: TraceSink | None = None,
        context: ToolContext | None = None,
        options: GenerationOptions | None = None,
    ) -> Trace:
        """Run the loop to completion and return the finished trace.

        Errors from ``provider.generate`` propagate unchanged. Tool failures
        are recorded as observations and the model decides what to do next.
        """
        trace = Trace(user_request=request)
        start = time.perf_counter()
        context = context or ToolContext(user_message=request)
        provider_name = provider.model_info().provider
        logger.info("Trace %s started for '%s' (max turns %d)", trace.id, request, self.max_turns)

        try:
            await self._run_turns(
                trace, request, provider, provider_name, registry, context, options
            )
        except asyncio.CancelledError:
            logger.warning("Trace %s cancelled after %d turns", trace.id, trace.iterations)
            trace.final_response = recover_response(trace)
            trace.metadata["cancelled"] = True
            trace.total_duration_ms = elapsed_ms(start)
            await self._emit(trace, sink)
            raise

        if not trace.completed:
            trace.finalize(recover_response(trace))
        elif not trace.final_response.strip():
            trace.final_response = EMPTY_RESPONSE_MESSAGE

        trace.total_duration_ms = elapsed_ms(start)
        await self._emit(trace, sink)
        return trace

    async def _run_turns(
        self,
        trace: Trace,
        request: str,
        provider: Provider,
        provider_name: str,
        registry: ToolRegistry | None,
        context: ToolContext,
        options: GenerationOptions | None,
    ) -> None:
        prompt = build_initial_prompt(request, context.current_time)
        for turn in range(1, self.max_turns + 1):
            trace.iterations = turn
            logger.debug("Turn %d prompt: %d chars", turn, len(prompt))

            llm_start = time.perf_counter()
            completion = await provider.generate(prompt, options)
            llm_ms = elapsed_ms(llm_start)
            logger.debug("Turn %d completion: %d chars in %dms", turn, len(completion), llm_ms)

            if self.config.detailed_logging and self.interaction_logger is not None:
                await self.interaction_logger.log_raw_llm_interaction(
                    trace.id, turn, prompt, completion, provider_name
                )

            call = parse_action_line(completion)
            thought = _extract_thought(completion)
            if thought:
                trace.add_step(Step(kind=StepKind.THOUGHT, content=thought))
            trace.add_step(
                Step(kind=StepKind.ACTION, content=completion, tool_call=call, duration_ms=llm_ms)
            )

            if call is not None:
                if registry is None:
                    prompt = "Observation: No tools available"
                    continue
                observation, outcome = await self._execute(call, registry, context)
                trace.add_step(
                    Step(
                        kind=StepKind.OBSERVATION,
                        content=observation,
                        tool_call=call,
                        tool_result=outcome,
                        duration_ms=outcome.execution_time_ms,
                    )
                )
                if outcome.success and call.name == "get_tasks" and _is_listing_request(request):
                    prompt = (
                        "You successfully retrieved the task data. Now provide a helpful, "
                        f"organized response to the user's request: '{request}'\n\n"
                        f"Task data:\n{observation}\n\nProvide your Answer:"
                    )
                else:
                    prompt = f"{observation}\n\nNow provide your Answer:"
                continue

            if _ANSWER_TOKEN in completion:
                logger.debug("Trace %s answered on turn %d", trace.id, turn)
                trace.finalize(completion)
                return
            if turn > 2 and _ACTION_PREFIX not in completion:
                logger.debug("Trace %s: no further actions on turn %d", trace.id, turn)
                trace.finalize(completion)
                return
            if turn >= self.max_turns:
                logger.info("Trace %s reached max turns (%d)", trace.id, self.max_turns)
                trace.finalize(completion if completion.strip() else FORCED_STOP_MESSAGE)
                return
            prompt = completion

    async def _execute(
        self, call: ToolInvocation, registry: ToolRegistry, context: ToolContext
    ) -> tuple[str, ToolOutcome]:
        start = time.perf_counter()
        try:
            result = await registry.execute_direct(call.name, call.args, context)
        except Exception as e:
            logger.warning("Tool '%s' raised: %s", call.name, e)
            return (
                f"Observation: Error executing {call.name}: {e}",
                ToolOutcome(
                    success=False,
                    message=str(e),
                    execution_time_ms=elapsed_ms(start),
                    error=str(e),
                ),
            )

        if not result.success:
            error = result.error or result.message
            return (
                f"Observation: Error executing {call.name}: {error}",
                ToolOutcome(
                    success=False,
                    data=result.data,
                    message=result.message or error,
                    execution_time_ms=result.execution_time_ms,
                    error=error,
                ),
            )

        formatted = format_tool_result(call.name, result.data)
        return (
            f"Observation: {formatted}",
            ToolOutcome(
                success=True,
                data=result.data,
                message=formatted,
                execution_time_ms=result.execution_time_ms,
            ),
        )

    async def _emit(self, trace: Trace, sink: TraceSink | None) -> None:
        if sink is not None:
            await sink(trace)
        elif self.interaction_logger is not None:
            await self.interaction_logger.log_trace(trace)

    def handle_processing_error(self, trace: Trace, error: Exception) -> None:
        """Record ``error`` on the trace and close it with an error response."""
        trace.add_step(Step(kind=StepKind.ERROR, content=f"Error occurred during processing: {error}"))
        trace.finalize(f"I encountered an error while processing your request: {error}")

    def extract_debug_info(self, trace: Trace) -> dict[str, Any]:
        outcomes = [s.tool_result for s in trace.steps if s.tool_result is not None]
        has_errors = any(s.kind == StepKind.ERROR for s in trace.steps)
        if not trace.completed:
            status = "incomplete"
        elif has_errors:
            status = "completed_with_errors"
        else:
            status = "completed_successfully"
        return {
            "trace_id": trace.id,
            "total_iterations": trace.iterations,
            "total_steps": len(trace.steps),
            "step_breakdown": dict(Counter(s.kind.value for s in trace.steps)),
            "tool_calls": len(outcomes),
            "total_duration_ms": trace.total_duration_ms or 0,
            "total_tool_time_ms": sum(o.execution_time_ms for o in outcomes),
            "successful_tools": sum(1 for o in outcomes if o.success),
            "failed_tools": sum(1 for o in outcomes if not o.success),
            "completion_status": status,
            "reasoning_quality_score": self.reasoning_quality_score(trace),
        }

    def reasoning_quality_score(self, trace: Trace) -> float:
        """Heuristic 0-100 score of how well-formed the reasoning chain is."""
        if not trace.steps:
            return 0.0

        kinds = {s.kind for s in trace.steps}
        outcomes = [s.tool_result for s in trace.steps if s.tool_result is not None]
        score = 0.0
        if trace.completed:
            score += 30
        if {StepKind.THOUGHT, StepKind.ACTION, StepKind.OBSERVATION} <= kinds:
            score += 20
        if outcomes:
            score += 15
            score += 15 * sum(1 for o in outcomes if o.success) / len(outcomes)
        if trace.iterations > self.config.max_iterations // 2:
            score -= 10
        if len(trace.final_response) > 10:
            score += 10
        score -= 5 * sum(1 for s in trace.steps if s.kind == StepKind.ERROR)
        return max(0.0, min(score, 100.0))

"""Trace sink: keeps recent reasoning traces and raw model exchanges."""

from __future__ import annotations

import logging
from collections import deque
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from agent_runtime.errors import RepositoryError, ServiceError
from agent_runtime.models.trace import Trace
from agent_runtime.repositories.base import LogRepository

logger = logging.getLogger(__name__)


class LLMInteraction(BaseModel):
    trace_id: str
    turn: int
    prompt: str
    response: str
    provider: str
    metadata: dict = Field(default_factory=dict)


class RequestFailure(BaseModel):
    session_id: str
    message: str
    error_type: str
    error: str
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class InteractionLogger:
    """Receives completed traces from the orchestrator.

    Traces are kept in a bounded ring; with a LogRepository they are also
    persisted. Persistence failures are logged, never raised.
    """

    def __init__(self, log_repo: LogRepository | None = None, max_traces: int = 100) -> None:
        self.log_repo = log_repo
        self._traces: deque[Trace] = deque(maxlen=max_traces)
        self._interactions: deque[LLMInteraction] = deque(maxlen=max_traces * 5)
        self._errors: deque[RequestFailure] = deque(maxlen=max_traces)

    async def log_raw_llm_interaction(
        self, trace_id: str, turn: int, prompt: str, response: str, provider: str
    ) -> None:
        self._interactions.append(
            LLMInteraction(
                trace_id=trace_id, turn=turn, prompt=prompt, response=response, provider=provider
            )
        )
        logger.debug(
            "LLM turn %d for trace %s via %s: %d prompt chars, %d response chars",
            turn,
            trace_id,
            provider,
            len(prompt),
            len(response),
        )

    async def log_trace(self, trace: Trace) -> None:
        self._traces.append(trace)
        logger.info(
            "Trace %s finished: completed=%s iterations=%d steps=%d duration=%sms",
            trace.id,
            trace.completed,
            trace.iterations,
            len(trace.steps),
            trace.total_duration_ms,
        )
        if self.log_repo is None:
            return
        try:
            await self.log_repo.save_trace(trace)
        except RepositoryError:
            logger.exception("Failed to persist trace %s", trace.id)

    async def log_interaction(
        self, session_id: str, message: str, response: str, provider: str, total_time_ms: int
    ) -> None:
        logger.info(
            "Session %s answered by %s in %dms (%d chars in, %d chars out)",
            session_id,
            provider,
            total_time_ms,
            len(message),
            len(response),
        )

    async def log_error(self, session_id: str, message: str, error: ServiceError) -> None:
        """Record a request that failed on every provider attempt."""
        self._errors.append(
            RequestFailure(
                session_id=session_id,
                message=message,
                error_type=error.error_type,
                error=error.message,
            )
        )
        logger.error("Session %s failed with %s: %s", session_id, error.error_type, error.message)

    def recent_errors(self, limit: int = 10) -> list[RequestFailure]:
        return list(reversed(self._errors))[:limit]

    def recent_traces(self, limit: int = 10) -> list[Trace]:
        """Most recent traces first."""
        return list(reversed(self._traces))[:limit]

    def get_trace(self, trace_id: str) -> Trace | None:
        return next((t for t in self._traces if t.id == trace_id), None)

    def interactions_for(self, trace_id: str) -> list[LLMInteraction]:
        return [i for i in self._interactions if i.trace_id == trace_id]

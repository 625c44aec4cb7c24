"""Service entry point: validates requests, runs them with failover, keeps sessions."""

from __future__ import annotations

import logging
import time
import uuid
from datetime import UTC, datetime
from typing import Any

from agent_runtime.config import ProviderConfig, RuntimeConfig
from agent_runtime.errors import ConfigError, ProviderUnavailableError, ServiceError
from agent_runtime.judge import Judge
from agent_runtime.locks import RWLock
from agent_runtime.models.evaluation import Evaluation
from agent_runtime.models.providers import (
    GenerationOptions,
    ModelInfo,
    Preferences,
    ProviderHealth,
    SwitchingPolicy,
)
from agent_runtime.models.requests import (
    AgentRequest,
    AgentResponse,
    ConversationSession,
    ServiceStatus,
    SessionMessage,
)
from agent_runtime.models.tools import ToolContext
from agent_runtime.models.trace import Trace
from agent_runtime.orchestrator.react import ReActOrchestrator, build_context_string
from agent_runtime.providers import AnthropicProvider, GeminiProvider, Provider, ProviderManager
from agent_runtime.tools.base import elapsed_ms
from agent_runtime.tools.registry import ToolRegistry
from agent_runtime.tracking.interactions import InteractionLogger

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


def create_provider(config: ProviderConfig) -> Provider:
    if config.kind == "anthropic":
        return AnthropicProvider(
            api_key=config.resolved_api_key(),
            model=config.model,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
        )
    kwargs: dict[str, Any] = {}
    if config.base_url:
        kwargs["base_url"] = config.base_url
    return GeminiProvider(
        api_key=config.resolved_api_key(),
        model=config.model,
        max_tokens=config.max_tokens,
        temperature=config.temperature,
        **kwargs,
    )


def generation_options(context: dict[str, Any]) -> GenerationOptions:
    """Per-request generation overrides taken from the request context."""
    stop = context.get("stop_sequences")
    max_tokens = context.get("max_tokens")
    temperature = context.get("temperature")
    top_p = context.get("top_p")
    return GenerationOptions(
        max_tokens=max_tokens if isinstance(max_tokens, int) and max_tokens > 0 else None,
        temperature=float(temperature) if isinstance(temperature, int | float) else None,
        top_p=float(top_p) if isinstance(top_p, int | float) else None,
        stop_sequences=[s for s in stop if isinstance(s, str)] if isinstance(stop, list) else None,
    )


class ServiceManager:
    """Owns the provider manager, tool registry, orchestrator and session store."""

    def __init__(
        self,
        config: RuntimeConfig,
        provider_manager: ProviderManager,
        registry: ToolRegistry | None = None,
        interaction_logger: InteractionLogger | None = None,
    ) -> None:
        self.config = config
        self.provider_manager = provider_manager
        self.registry = registry
        self.interaction_logger = interaction_logger or InteractionLogger()
        self.orchestrator = ReActOrchestrator(config.orchestrator, self.interaction_logger)
        self.judge = Judge(config.judge)
        self._sessions: dict[str, ConversationSession] = {}
        self._sessions_lock = RWLock()

    @classmethod
    async def from_config(
        cls,
        config: RuntimeConfig,
        registry: ToolRegistry | None = None,
        interaction_logger: InteractionLogger | None = None,
    ) -> ServiceManager:
        """Build a manager with every provider declared in ``config`` registered."""
        manager = ProviderManager(config.switching, config.preferences)
        for name, provider_config in config.providers.items():
            provider = create_provider(provider_config)
            await provider.initialize()
            await manager.register(name, provider)
        return cls(config, manager, registry, interaction_logger)

    async def initialize(self) -> None:
        names = await self.provider_manager.provider_names()
        if not names:
            raise ConfigError("No providers configured")
        if self.config.default_provider not in names:
            raise ConfigError(
                f"Default provider '{self.config.default_provider}' not found in configuration"
            )
        self.provider_manager.start_health_monitoring()

    async def shutdown(self) -> None:
        await self.provider_manager.cleanup()

    # ----- Requests -----

    async def process_message(self, request: AgentRequest) -> AgentResponse:
        """Answer ``request``, failing over between providers on error.

        Raises InvalidRequestError for malformed requests and the last
        provider error when every attempt fails.
        """
        request.ensure_valid()
        start = time.perf_counter()
        session_id = request.session_id or str(uuid.uuid4())
        provider_name = (
            request.model_preference or await self.provider_manager.get_active_provider_name()
        )

        last_error: ServiceError | None = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = await self._process_with_provider(
                    request, session_id, provider_name, start
                )
            except ServiceError as e:
                logger.warning(
                    "Attempt %d with provider '%s' failed: %s", attempt, provider_name, e.message
                )
                await self.provider_manager.record_failure(provider_name, e)
                last_error = e
                try:
                    provider_name = await self.provider_manager.attempt_failover()
                except ServiceError as failover_error:
                    logger.warning("No failover available: %s", failover_error.message)
                    break
                continue

            await self.provider_manager.record_success(provider_name, elapsed_ms(start))
            return response

        final_error = last_error or ProviderUnavailableError("*", "All providers failed")
        await self.interaction_logger.log_error(session_id, request.message, final_error)
        raise final_error

    async def _process_with_provider(
        self,
        request: AgentRequest,
        session_id: str,
        provider_name: str,
        start: float,
    ) -> AgentResponse:
        provider = await self.provider_manager.get_provider(provider_name)
        if provider is None:
            raise ProviderUnavailableError(provider_name)

        logger.debug(
            "Processing request - provider: %s, session: %s, message length: %d",
            provider_name,
            session_id,
            len(request.message),
        )
        history = await self.get_session_history(session_id)
        metadata: dict[str, Any] = {"session_id": session_id}
        if "user_id" in request.context:
            metadata["user_id"] = request.context["user_id"]
        context = ToolContext(
            user_message=request.message,
            conversation_history=[m.content for m in history],
            metadata=metadata,
        )

        llm_start = time.perf_counter()
        trace = await self.orchestrator.process_request(
            request.message,
            provider,
            self.registry,
            context=context,
            options=generation_options(request.context),
        )
        llm_ms = elapsed_ms(llm_start)
        total_ms = elapsed_ms(start)

        model_info = provider.model_info()
        await self._update_session(session_id, request.message, trace, model_info)
        await self.interaction_logger.log_interaction(
            session_id, request.message, trace.final_response, provider_name, total_ms
        )

        response_metadata: dict[str, Any] = {
            "provider": provider_name,
            "timestamp": datetime.now(UTC).isoformat(),
            "total_time_ms": total_ms,
            "llm_time_ms": llm_ms,
            "trace_id": trace.id,
            "iterations": trace.iterations,
        }
        if self.config.orchestrator.include_reasoning_in_response:
            response_metadata["reasoning"] = build_context_string(trace.steps)
        return AgentResponse(
            message=trace.final_response,
            session_id=session_id,
            model_info=model_info,
            metadata=response_metadata,
        )

    # ----- Sessions -----

    async def _update_session(
        self, session_id: str, message: str, trace: Trace, model_info: ModelInfo
    ) -> None:
        now = datetime.now(UTC)
        limit = self.config.max_conversation_history * 2
        async with self._sessions_lock.write():
            session = self._sessions.setdefault(
                session_id, ConversationSession(id=session_id, created_at=now)
            )
            session.messages.append(SessionMessage(content=message, is_user=True, timestamp=now))
            session.messages.append(
                SessionMessage(
                    content=trace.final_response,
                    is_user=False,
                    timestamp=now,
                    model_info=model_info,
                )
            )
            if len(session.messages) > limit:
                del session.messages[: len(session.messages) - limit]
            session.last_activity = now
            session.metadata["last_trace_id"] = trace.id

    async def get_session_history(self, session_id: str) -> list[SessionMessage]:
        async with self._sessions_lock.read():
            session = self._sessions.get(session_id)
            return [m.model_copy() for m in session.messages] if session else []

    async def clear_session(self, session_id: str) -> bool:
        async with self._sessions_lock.write():
            return self._sessions.pop(session_id, None) is not None

    async def clear_all_sessions(self) -> None:
        async with self._sessions_lock.write():
            self._sessions.clear()

    async def session_ids(self) -> list[str]:
        async with self._sessions_lock.read():
            return sorted(self._sessions)

    # ----- Status -----

    async def get_status(self) -> ServiceStatus:
        """Report provider states, switching to a Ready provider if the active one is not."""
        active = await self.provider_manager.get_active_provider_name()
        health = await self.provider_manager.get_all_health()
        statuses = {name: h.status for name, h in health.items()}

        ready = active in statuses and statuses[active].is_ready
        if not ready:
            for name in sorted(statuses):
                if not statuses[name].is_ready:
                    continue
                try:
                    await self.provider_manager.switch(name)
                except ProviderUnavailableError as e:
                    logger.warning("Could not switch to ready provider '%s': %s", name, e.message)
                    continue
                logger.info("Switched from unavailable provider '%s' to '%s'", active, name)
                active, ready = name, True
                break

        return ServiceStatus(active_provider=active, providers=statuses, service_ready=ready)

    async def get_model_info(self) -> ModelInfo:
        name = await self.provider_manager.get_active_provider_name()
        provider = await self.provider_manager.get_provider(name)
        if provider is None:
            raise ProviderUnavailableError(name)
        return provider.model_info()

    # ----- Evaluation -----

    def get_trace(self, trace_id: str) -> Trace | None:
        return self.interaction_logger.get_trace(trace_id)

    async def evaluate_trace(
        self, trace: Trace, judge_provider_name: str | None = None
    ) -> Evaluation:
        name = judge_provider_name or await self.provider_manager.get_active_provider_name()
        provider = await self.provider_manager.get_provider(name)
        if provider is None:
            raise ProviderUnavailableError(name)
        return await self.judge.evaluate(trace, provider)

    # ----- Provider passthroughs -----

    async def register_provider(self, name: str, provider: Provider) -> None:
        await self.provider_manager.register(name, provider)

    async def switch_provider(self, name: str) -> None:
        await self.provider_manager.switch(name)

    async def attempt_failover(self) -> str:
        return await self.provider_manager.attempt_failover()

    async def get_preferences(self) -> Preferences:
        return await self.provider_manager.get_preferences()

    async def update_preferences(self, preferences: Preferences) -> None:
        await self.provider_manager.update_preferences(preferences)

    async def get_switching_config(self) -> SwitchingPolicy:
        return await self.provider_manager.get_switching_config()

    async def update_switching_config(self, switching: SwitchingPolicy) -> None:
        await self.provider_manager.update_switching_config(switching)

    async def get_provider_health(self, name: str) -> ProviderHealth | None:
        return await self.provider_manager.get_provider_health(name)

    async def get_all_health(self) -> dict[str, ProviderHealth]:
        return await self.provider_manager.get_all_health()

    async def configure_gemini_api_key(self, api_key: str) -> None:
        await self.provider_manager.configure_gemini_api_key(api_key)

    async def stop_health_monitoring(self) -> None:
        await self.provider_manager.stop_health_monitoring()

"""Provider manager: health tracking, switching, and automatic failover."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta

from agent_runtime.errors import (
    NoHealthyProvidersError,
    ProviderUnavailableError,
    ServiceError,
)
from agent_runtime.locks import RWLock
from agent_runtime.models.providers import (
    Preferences,
    ProviderHealth,
    ProviderState,
    ProviderStatus,
    SwitchingPolicy,
)
from agent_runtime.providers.base import Provider

logger = logging.getLogger(__name__)

_MISSING_MESSAGES = {
    "local": (
        "Local model is not available on this system. This usually means the required "
        "dependencies for local AI processing are missing. Consider using Gemini instead "
        "by providing an API key in Settings."
    ),
    "gemini": (
        "Gemini model is not available. This might be due to missing configuration. "
        "Please check your settings."
    ),
}

_UNAVAILABLE_MESSAGES = {
    "local": (
        "Local model is unavailable: {reason}. This typically means the system doesn't have "
        "the required dependencies for local AI processing. Consider using Gemini instead "
        "by providing an API key in Settings."
    ),
    "gemini": (
        "Gemini model is unavailable: {reason}. Please check your API key in Settings and "
        "ensure you have an internet connection."
    ),
}

_ERROR_MESSAGES = {
    "local": (
        "Local model error: {reason}. This is likely due to missing system dependencies or "
        "incompatible hardware. Consider using Gemini instead."
    ),
    "gemini": "Gemini model error: {reason}. Please check your API key and internet connection.",
}


def _status_message(name: str, status: ProviderStatus) -> str:
    templates = _ERROR_MESSAGES if status.state == ProviderState.ERROR else _UNAVAILABLE_MESSAGES
    reason = status.detail or status.state.value
    template = templates.get(name)
    if template:
        return template.format(reason=reason)
    return f"{name}: {reason}"


class ProviderManager:
    """Owns the registered providers, their health, and the active selection.

    The provider and health maps sit behind one readers-writers lock.
    Provider calls are always made after the lock is released.
    """

    def __init__(
        self,
        switching: SwitchingPolicy | None = None,
        preferences: Preferences | None = None,
    ) -> None:
        self._switching = switching or SwitchingPolicy()
        self._preferences = preferences or Preferences()
        self._providers: dict[str, Provider] = {}
        self._health: dict[str, ProviderHealth] = {}
        self._active = self._preferences.primary_provider
        self._lock = RWLock()
        self._monitor_task: asyncio.Task | None = None

    # ----- Registration and lookup -----

    async def register(self, name: str, provider: Provider) -> None:
        status = await provider.status()
        now = datetime.now(UTC)
        health = ProviderHealth(status=status)
        if status.state == ProviderState.READY:
            health.last_success = now
        elif status.state == ProviderState.ERROR:
            health.consecutive_failures = 1
            health.last_failure = now

        async with self._lock.write():
            self._providers[name] = provider
            self._health[name] = health
        logger.info("Registered provider '%s' with status: %s", name, status)

    async def get_provider(self, name: str) -> Provider | None:
        async with self._lock.read():
            return self._providers.get(name)

    async def get_active_provider_name(self) -> str:
        async with self._lock.read():
            return self._active

    async def provider_names(self) -> list[str]:
        async with self._lock.read():
            return list(self._providers)

    async def get_provider_health(self, name: str) -> ProviderHealth | None:
        async with self._lock.read():
            health = self._health.get(name)
            return health.model_copy(deep=True) if health else None

    async def get_all_health(self) -> dict[str, ProviderHealth]:
        async with self._lock.read():
            return {name: h.model_copy(deep=True) for name, h in self._health.items()}

    # ----- Switching -----

    async def switch(self, name: str) -> None:
        """Make ``name`` the active provider.

        Raises ProviderUnavailableError with a user-facing message when the
        provider is unknown or not in a usable state.
        """
        async with self._lock.read():
            provider = self._providers.get(name)
            health = self._health.get(name)
            status = health.status.model_copy() if health else None

        if provider is None:
            raise ProviderUnavailableError(
                name, _MISSING_MESSAGES.get(name, f"Provider '{name}' is not available")
            )
        if status is None:
            raise ProviderUnavailableError(name, f"No health status for provider: {name}")

        if status.state == ProviderState.INITIALIZING:
            await self._initialize_provider(name, provider)
        elif status.state != ProviderState.READY:
            raise ProviderUnavailableError(name, _status_message(name, status))

        async with self._lock.write():
            previous = self._active
            self._active = name
        if previous != name:
            logger.info("Switched active provider from '%s' to '%s'", previous, name)

    async def _initialize_provider(self, name: str, provider: Provider) -> None:
        try:
            await provider.initialize()
            status = await provider.status()
        except ServiceError as e:
            status = ProviderStatus.error(e.message)

        now = datetime.now(UTC)
        async with self._lock.write():
            health = self._health.setdefault(name, ProviderHealth())
            health.status = status
            if status.state == ProviderState.ERROR:
                health.consecutive_failures += 1
                health.last_failure = now
            elif status.state == ProviderState.READY:
                health.consecutive_failures = 0
                health.last_success = now

        if status.state in (ProviderState.READY, ProviderState.INITIALIZING):
            # Still initializing: the health monitor picks up the final state.
            return
        if status.state == ProviderState.UNAVAILABLE:
            raise ProviderUnavailableError(
                name, f"Provider {name} is unavailable: {status.detail}"
            )
        raise ProviderUnavailableError(name, f"Provider {name} has error: {status.detail}")

    def _usable(self, health: ProviderHealth, now: datetime) -> bool:
        if not health.status.is_ready:
            return False
        if health.consecutive_failures >= self._switching.max_consecutive_failures:
            return False
        if health.consecutive_failures and health.last_failure is not None:
            cooldown = timedelta(seconds=self._switching.retry_cooldown_seconds)
            if now - health.last_failure < cooldown:
                return False
        return True

    async def find_best(self) -> str:
        """Pick the healthiest provider.

        The primary wins when it is Ready with no failures; then the preferred
        fallbacks; then any usable provider, in ``fallback_order`` first and
        by name after that.
        """
        async with self._lock.read():
            health = {name: h.model_copy(deep=True) for name, h in self._health.items()}
            preferences = self._preferences.model_copy(deep=True)
            fallback_order = list(self._switching.fallback_order)

        now = datetime.now(UTC)
        primary = health.get(preferences.primary_provider)
        if primary and primary.status.is_ready and primary.consecutive_failures == 0:
            return preferences.primary_provider

        for name in preferences.fallback_providers:
            candidate = health.get(name)
            if candidate and self._usable(candidate, now):
                return name

        ordered = [n for n in fallback_order if n in health]
        ordered += sorted(n for n in health if n not in ordered)
        for name in ordered:
            if self._usable(health[name], now):
                return name

        raise NoHealthyProvidersError()

    async def attempt_failover(self) -> str:
        """Switch to the best available provider and return its name."""
        async with self._lock.read():
            allow_switch = self._preferences.allow_auto_switch
            auto_failover = self._switching.enable_auto_failover
            active = self._active

        if not allow_switch:
            raise ProviderUnavailableError(active, "Automatic switching is disabled")
        if not auto_failover:
            raise ProviderUnavailableError(active, "Automatic failover is disabled")

        best = await self.find_best()
        await self.switch(best)
        if best != active:
            logger.warning("Failed over from provider '%s' to '%s'", active, best)
        return best

    # ----- Outcome accounting -----

    async def record_success(self, name: str, latency_ms: int) -> None:
        async with self._lock.write():
            health = self._health.get(name)
            if health is None:
                logger.warning("record_success for unknown provider '%s'", name)
                return
            health.last_success = datetime.now(UTC)
            health.consecutive_failures = 0
            health.total_requests += 1
            health.successful_requests += 1
            if health.avg_response_time_ms is None:
                health.avg_response_time_ms = latency_ms
            else:
                health.avg_response_time_ms = (health.avg_response_time_ms + latency_ms) // 2
            if not health.status.is_ready:
                health.status = ProviderStatus.ready()

    async def record_failure(self, name: str, error: BaseException | str) -> None:
        reason = error.message if isinstance(error, ServiceError) else str(error)
        async with self._lock.write():
            health = self._health.get(name)
            if health is None:
                logger.warning("record_failure for unknown provider '%s': %s", name, reason)
                return
            health.last_failure = datetime.now(UTC)
            health.consecutive_failures += 1
            health.total_requests += 1
            if health.consecutive_failures >= self._switching.max_consecutive_failures:
                health.status = ProviderStatus.unavailable(
                    f"Too many consecutive failures: {reason}"
                )
            else:
                health.status = ProviderStatus.error(reason)
            failures = health.consecutive_failures
        logger.warning("Provider '%s' failed (%d consecutive): %s", name, failures, reason)

    # ----- Configuration -----

    async def get_preferences(self) -> Preferences:
        async with self._lock.read():
            return self._preferences.model_copy(deep=True)

    async def update_preferences(self, preferences: Preferences) -> None:
        async with self._lock.write():
            self._preferences = preferences.model_copy(deep=True)
            if preferences.primary_provider in self._providers:
                self._active = preferences.primary_provider
        logger.info("Updated provider preferences (primary: %s)", preferences.primary_provider)

    async def get_switching_config(self) -> SwitchingPolicy:
        async with self._lock.read():
            return self._switching.model_copy(deep=True)

    async def update_switching_config(self, switching: SwitchingPolicy) -> None:
        async with self._lock.write():
            self._switching = switching.model_copy(deep=True)

    async def configure_gemini_api_key(self, api_key: str) -> None:
        provider = await self.get_provider("gemini")
        configure = getattr(provider, "configure_api_key", None)
        if configure is None:
            raise ProviderUnavailableError("gemini", _MISSING_MESSAGES["gemini"])
        await configure(api_key)
        status = await provider.status()
        async with self._lock.write():
            health = self._health.setdefault("gemini", ProviderHealth())
            health.status = status
            if status.is_ready:
                health.consecutive_failures = 0

    # ----- Health monitoring -----

    async def run_health_checks(self) -> None:
        """Poll every provider's status once, with a per-call timeout."""
        async with self._lock.read():
            providers = list(self._providers.items())
            timeout = self._switching.health_check_timeout_seconds

        for name, provider in providers:
            try:
                status = await asyncio.wait_for(provider.status(), timeout)
            except Exception:
                logger.warning("Health check failed for provider '%s'", name, exc_info=True)
                status = ProviderStatus.unavailable("Health check failed")

            async with self._lock.write():
                health = self._health.setdefault(name, ProviderHealth())
                previous = health.status.state
                health.status = status
                if status.is_ready:
                    health.consecutive_failures = 0
            if previous != status.state:
                logger.info("Provider '%s' is now %s", name, status)

    async def _monitor_loop(self) -> None:
        while True:
            try:
                await self.run_health_checks()
            except Exception:
                logger.exception("Health monitor pass failed")
            async with self._lock.read():
                interval = self._switching.health_check_interval_seconds
            await asyncio.sleep(interval)

    def start_health_monitoring(self) -> None:
        if self._monitor_task is not None and not self._monitor_task.done():
            return
        self._monitor_task = asyncio.get_running_loop().create_task(self._monitor_loop())
        logger.info("Started provider health monitoring")

    async def stop_health_monitoring(self) -> None:
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped provider health monitoring")

    @property
    def monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    async def cleanup(self) -> None:
        await self.stop_health_monitoring()
        async with self._lock.read():
            providers = list(self._providers.values())
        for provider in providers:
            await provider.cleanup()

"""Provider status, health, and selection policy models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class ProviderState(StrEnum):
    INITIALIZING = "initializing"
    READY = "ready"
    UNAVAILABLE = "unavailable"
    ERROR = "error"


class ProviderStatus(BaseModel):
    """Provider state plus the reason (Unavailable) or message (Error) that goes with it."""

    state: ProviderState
    detail: str | None = None

    @classmethod
    def initializing(cls) -> ProviderStatus:
        return cls(state=ProviderState.INITIALIZING)

    @classmethod
    def ready(cls) -> ProviderStatus:
        return cls(state=ProviderState.READY)

    @classmethod
    def unavailable(cls, reason: str) -> ProviderStatus:
        return cls(state=ProviderState.UNAVAILABLE, detail=reason)

    @classmethod
    def error(cls, message: str) -> ProviderStatus:
        return cls(state=ProviderState.ERROR, detail=message)

    @property
    def is_ready(self) -> bool:
        return self.state == ProviderState.READY

    def __str__(self) -> str:
        if self.detail:
            return f"{self.state.value}: {self.detail}"
        return self.state.value


class GenerationOptions(BaseModel):
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    stop_sequences: list[str] | None = None
    stream: bool = False


class ModelInfo(BaseModel):
    id: str
    name: str
    provider: str
    version: str | None = None
    max_context: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class ProviderHealth(BaseModel):
    status: ProviderStatus = Field(default_factory=ProviderStatus.initializing)
    last_success: datetime | None = None
    last_failure: datetime | None = None
    consecutive_failures: int = 0
    avg_response_time_ms: int | None = None
    total_requests: int = 0
    successful_requests: int = 0


class SwitchingPolicy(BaseModel):
    max_consecutive_failures: int = 3
    health_check_timeout_seconds: float = 10
    health_check_interval_seconds: float = 30
    enable_auto_failover: bool = True
    fallback_order: list[str] = Field(default_factory=lambda: ["local", "gemini"])
    retry_cooldown_seconds: float = 300


class Preferences(BaseModel):
    primary_provider: str = "local"
    allow_auto_switch: bool = True
    fallback_providers: list[str] = Field(default_factory=lambda: ["gemini"])
    prefer_local: bool = True
    max_response_time_ms: int = 30000

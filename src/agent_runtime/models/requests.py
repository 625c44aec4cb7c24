"""Request and response envelopes for the service entry point."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from agent_runtime.errors import InvalidRequestError
from agent_runtime.models.providers import ModelInfo, ProviderStatus

MAX_MESSAGE_LENGTH = 100_000
MAX_SESSION_ID_LENGTH = 255
VALID_MODEL_PREFERENCES = ("gemini", "local")


class AgentRequest(BaseModel):
    message: str
    session_id: str | None = None
    model_preference: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)

    def ensure_valid(self) -> None:
        """Raise InvalidRequestError if the request cannot be processed."""
        if not self.message.strip():
            raise InvalidRequestError("Message cannot be empty")
        if len(self.message) > MAX_MESSAGE_LENGTH:
            raise InvalidRequestError("Message too long (max 100,000 characters)")

        if self.session_id is not None:
            if not self.session_id.strip():
                raise InvalidRequestError("Session ID cannot be empty")
            if len(self.session_id) > MAX_SESSION_ID_LENGTH:
                raise InvalidRequestError("Session ID too long (max 255 characters)")

        if self.model_preference is not None:
            if not self.model_preference.strip():
                raise InvalidRequestError("Model preference cannot be empty")
            if self.model_preference not in VALID_MODEL_PREFERENCES:
                raise InvalidRequestError(
                    f"Invalid model preference '{self.model_preference}'. "
                    f"Valid options: {', '.join(VALID_MODEL_PREFERENCES)}"
                )


class AgentResponse(BaseModel):
    message: str
    session_id: str
    model_info: ModelInfo
    metadata: dict[str, Any] = Field(default_factory=dict)


class SessionMessage(BaseModel):
    content: str
    is_user: bool
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    model_info: ModelInfo | None = None


class ConversationSession(BaseModel):
    id: str
    messages: list[SessionMessage] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ServiceStatus(BaseModel):
    active_provider: str
    providers: dict[str, ProviderStatus] = Field(default_factory=dict)
    service_ready: bool = False

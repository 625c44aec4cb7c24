"""Tool capability declarations, execution context, and execution results."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class PermissionLevel(StrEnum):
    READ_ONLY = "read_only"
    MODIFY_TASKS = "modify_tasks"
    TIMER_CONTROL = "timer_control"
    FULL_ACCESS = "full_access"


class ParameterType(StrEnum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class ParameterValidation(BaseModel):
    min: float | None = None
    max: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    allowed_values: list[Any] | None = None


class ParameterDefinition(BaseModel):
    name: str
    param_type: ParameterType
    description: str
    default_value: Any = None
    validation: ParameterValidation | None = None
    inference_sources: list[str] = Field(default_factory=list)


class ToolExample(BaseModel):
    user_request: str
    parameters: dict[str, Any] = Field(default_factory=dict)
    description: str


class ToolCapability(BaseModel):
    """Static description of what a tool does and what it needs."""

    name: str
    description: str
    required_parameters: list[ParameterDefinition] = Field(default_factory=list)
    optional_parameters: list[ParameterDefinition] = Field(default_factory=list)
    required_permissions: list[PermissionLevel] = Field(default_factory=list)
    requires_confirmation: bool = False
    category: str = "General"
    examples: list[ToolExample] = Field(default_factory=list)

    def parameter(self, name: str) -> ParameterDefinition | None:
        for definition in [*self.required_parameters, *self.optional_parameters]:
            if definition.name == name:
                return definition
        return None


class ToolContext(BaseModel):
    """What a tool can see about the user and the conversation."""

    user_message: str = ""
    conversation_history: list[str] = Field(default_factory=list)
    active_task_id: str | None = None
    active_timer_session_id: str | None = None
    recent_task_ids: list[str] = Field(default_factory=list)
    current_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    user_preferences: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


class InferredParameters(BaseModel):
    parameters: dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.0
    needs_confirmation: list[str] = Field(default_factory=list)
    alternatives: list[dict[str, Any]] = Field(default_factory=list)
    explanation: str = ""


class ToolExecutionResult(BaseModel):
    success: bool
    data: Any = None
    message: str = ""
    execution_time_ms: int = 0
    error: str | None = None
    suggestions: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ToolSuggestion(BaseModel):
    """A ranked tool proposal for a user message."""

    tool_name: str
    confidence: float
    relevance: float
    parameters: InferredParameters
    reasoning: str


class InferenceInfo(BaseModel):
    """How parameters were inferred for one smart execution."""

    confidence: float
    inferred_parameters: list[str] = Field(default_factory=list)
    needed_confirmation: list[str] = Field(default_factory=list)
    explanation: str = ""
    alternatives_count: int = 0


class ToolUsageStats(BaseModel):
    total_executions: int = 0
    successful_executions: int = 0
    avg_execution_time_ms: float = 0.0
    last_used: datetime | None = None
    common_parameters: dict[str, int] = Field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.total_executions == 0:
            return 0.0
        return self.successful_executions / self.total_executions

"""Data models for traces, tools, providers, records, logs, and evaluations."""

from agent_runtime.models.evaluation import AspectScore, Evaluation, EvaluationCriteria
from agent_runtime.models.logs import (
    ExecutionLogFilter,
    ExecutionLogRecord,
    PerformanceClass,
    SessionToolStats,
    UsageAnalytics,
)
from agent_runtime.models.providers import (
    GenerationOptions,
    ModelInfo,
    Preferences,
    ProviderHealth,
    ProviderState,
    ProviderStatus,
    SwitchingPolicy,
)
from agent_runtime.models.records import Task, TaskStatus, TimeSession, TimeStats
from agent_runtime.models.requests import (
    AgentRequest,
    AgentResponse,
    ConversationSession,
    ServiceStatus,
    SessionMessage,
)
from agent_runtime.models.tools import (
    InferenceInfo,
    InferredParameters,
    ParameterDefinition,
    ParameterType,
    ParameterValidation,
    PermissionLevel,
    ToolCapability,
    ToolContext,
    ToolExample,
    ToolExecutionResult,
    ToolSuggestion,
    ToolUsageStats,
)
from agent_runtime.models.trace import Step, StepKind, ToolInvocation, ToolOutcome, Trace

__all__ = [
    "AgentRequest",
    "AgentResponse",
    "AspectScore",
    "ConversationSession",
    "Evaluation",
    "EvaluationCriteria",
    "ExecutionLogFilter",
    "ExecutionLogRecord",
    "GenerationOptions",
    "InferenceInfo",
    "InferredParameters",
    "ModelInfo",
    "ParameterDefinition",
    "ParameterType",
    "ParameterValidation",
    "PerformanceClass",
    "PermissionLevel",
    "Preferences",
    "ProviderHealth",
    "ProviderState",
    "ProviderStatus",
    "ServiceStatus",
    "SessionMessage",
    "SessionToolStats",
    "Step",
    "StepKind",
    "SwitchingPolicy",
    "Task",
    "TaskStatus",
    "TimeSession",
    "TimeStats",
    "ToolCapability",
    "ToolContext",
    "ToolExample",
    "ToolExecutionResult",
    "ToolInvocation",
    "ToolOutcome",
    "ToolSuggestion",
    "ToolUsageStats",
    "Trace",
    "UsageAnalytics",
]

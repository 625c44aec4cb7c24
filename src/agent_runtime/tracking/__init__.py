"""Tool execution logging and reasoning-trace capture."""

from agent_runtime.tracking.execution_logger import ExecutionLogger, PerformanceTracker
from agent_runtime.tracking.interactions import InteractionLogger

__all__ = ["ExecutionLogger", "InteractionLogger", "PerformanceTracker"]

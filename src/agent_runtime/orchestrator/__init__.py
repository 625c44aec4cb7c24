"""ReAct reasoning loop and the formatters that feed tool results back to the model."""

from agent_runtime.orchestrator.formatters import format_tool_result
from agent_runtime.orchestrator.react import ReActOrchestrator, parse_action_line

__all__ = ["ReActOrchestrator", "format_tool_result", "parse_action_line"]

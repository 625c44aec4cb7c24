"""Trace evaluation with a judge model."""

from agent_runtime.judge.evaluator import Judge
from agent_runtime.judge.report import comparative_report

__all__ = ["Judge", "comparative_report"]

"""Markdown comparison of several judge evaluations."""

from __future__ import annotations

from agent_runtime.models.evaluation import Evaluation

_ASPECT_LABELS = (
    ("reasoning_quality", "Reasoning"),
    ("tool_usage", "Tool Usage"),
    ("relevance", "Relevance"),
    ("completeness", "Completeness"),
    ("efficiency", "Efficiency"),
)


def comparative_report(evaluations: list[Evaluation]) -> str:
    if not evaluations:
        return "No evaluations to compare"

    scores = [e.overall_score for e in evaluations]
    lines = [
        "# ReAct Chain Evaluation Report",
        "",
        "## Summary",
        f"- **Total Evaluations**: {len(evaluations)}",
        f"- **Average Score**: {sum(scores) / len(scores):.2f}/10.0",
        f"- **Best Score**: {max(scores):.2f}/10.0",
        f"- **Worst Score**: {min(scores):.2f}/10.0",
        "",
        "## Individual Evaluations",
        "",
    ]
    for i, evaluation in enumerate(evaluations, start=1):
        lines.append(f"### Evaluation {i} (Score: {evaluation.overall_score:.2f}/10.0)")
        lines.append(f"- **Trace ID**: {evaluation.trace_id}")
        for key, label in _ASPECT_LABELS:
            lines.append(f"- **{label}**: {evaluation.aspect(key).score:.1f}/10.0")
        lines.append(f"- **Feedback**: {evaluation.general_feedback}")
        lines.append("")
    return "\n".join(lines)

"""LLM-as-judge: scores a finished reasoning trace against a weighted rubric."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from agent_runtime.config import JudgeConfig
from agent_runtime.errors import LLMError, ServiceError, ValidationError
from agent_runtime.models.evaluation import ASPECTS, AspectScore, Evaluation
from agent_runtime.models.providers import GenerationOptions
from agent_runtime.models.trace import Trace
from agent_runtime.providers.base import Provider

logger = logging.getLogger(__name__)

MIN_SCORE = 0.0
MAX_SCORE = 10.0

_CRITERIA = (
    ("reasoning_quality", "Reasoning Quality",
     "How logical, coherent, and well-structured is the reasoning process?"),
    ("tool_usage", "Tool Usage",
     "How appropriately and effectively are tools selected and used?"),
    ("relevance", "Relevance",
     "How well does the response address the user's specific request?"),
    ("completeness", "Completeness",
     "Does the response fully answer the question and provide necessary information?"),
    ("efficiency", "Efficiency",
     "Is the reasoning process efficient without unnecessary steps or redundancy?"),
)

_ASPECT_SCHEMA = """    "{aspect}": {{
        "score": <0.0-10.0>,
        "explanation": "<detailed explanation>",
        "feedback": "<specific improvement suggestions>"
    }},"""

_EVALUATION_PROMPT = """You are an expert AI evaluator tasked with assessing the quality of a ReAct (Reasoning and Acting) reasoning chain.

Please evaluate the following ReAct reasoning chain based on these criteria:

{criteria_description}

## User Request
{user_request}

## ReAct Reasoning Chain
{chain_summary}

## Final Response
{final_response}

## Evaluation Instructions
Reply ONLY with a fenced JSON block in exactly this format:

```json
{{
{aspect_schema}
    "general_feedback": "<overall assessment and key insights>",
    "recommendations": [
        "<specific recommendation 1>",
        "<specific recommendation 2>",
        "<specific recommendation 3>"
    ]
}}
```

Focus on being constructive and specific in your feedback. Consider both what was done well and what could be improved."""


def clamp_score(value: float) -> float:
    return max(MIN_SCORE, min(float(value), MAX_SCORE))


def extract_json(text: str) -> dict[str, Any]:
    """Pull the judge's JSON object out of its completion.

    A fenced ```json block wins; otherwise the span from the first ``{`` to
    the last ``}`` is used.
    """
    match = re.search(r"```json\s*(.*?)```", text, re.DOTALL)
    if match:
        candidate = match.group(1).strip()
    else:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise ValidationError("No valid JSON found in judge response")
        candidate = text[start : end + 1]
    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Failed to parse judge response: {e}") from e
    if not isinstance(parsed, dict):
        raise ValidationError("Judge response must be a JSON object")
    return parsed


def parse_aspect(raw: dict[str, Any], aspect: str) -> AspectScore:
    entry = raw.get(aspect)
    if not isinstance(entry, dict):
        raise ValidationError(f"Missing aspect: {aspect}")
    score = entry.get("score")
    # bool is an int subclass; a true/false score is still invalid.
    if isinstance(score, bool) or not isinstance(score, int | float):
        raise ValidationError(f"Missing or invalid score for {aspect}")
    explanation = entry.get("explanation")
    feedback = entry.get("feedback")
    return AspectScore(
        score=clamp_score(score),
        explanation=explanation if isinstance(explanation, str) else "No explanation provided",
        feedback=feedback if isinstance(feedback, str) else None,
    )


class Judge:
    """Evaluates traces with a second model call."""

    def __init__(self, config: JudgeConfig | None = None) -> None:
        self.config = config or JudgeConfig()

    def describe_criteria(self) -> str:
        weights = self.config.criteria.weights()
        return "\n".join(
            f"{i}. **{title}** (Weight: {weights[key] * 100:.1f}%): {question}"
            for i, (key, title, question) in enumerate(_CRITERIA, start=1)
        )

    def summarize(self, trace: Trace) -> str:
        """Deterministic text rendering of a trace for the judge prompt."""
        lines: list[str] = []
        for i, step in enumerate(trace.steps, start=1):
            lines.append(f"\n### Step {i} - {step.kind.value}")
            lines.append(f"**Content**: {step.content}")
            if step.tool_call is not None:
                lines.append(f"**Tool Used**: {step.tool_call.name}")
                if step.tool_call.args:
                    lines.append(f"**Tool Args**: {json.dumps(step.tool_call.args, sort_keys=True)}")
            if step.tool_result is not None:
                outcome = "Success" if step.tool_result.success else "Failed"
                lines.append(f"**Tool Result**: {outcome} - {step.tool_result.message}")
            if step.duration_ms is not None:
                lines.append(f"**Duration**: {step.duration_ms}ms")

        lines.append(f"\n**Total Steps**: {len(trace.steps)}")
        lines.append(f"**Total Iterations**: {trace.iterations}")
        if trace.total_duration_ms is not None:
            lines.append(f"**Total Duration**: {trace.total_duration_ms}ms")
        return "\n".join(lines) + "\n"

    def build_prompt(self, trace: Trace) -> str:
        if self.config.custom_prompt:
            return self._substitute(self.config.custom_prompt, trace)
        return _EVALUATION_PROMPT.format(
            criteria_description=self.describe_criteria(),
            user_request=trace.user_request,
            chain_summary=self.summarize(trace),
            final_response=trace.final_response,
            aspect_schema="\n".join(_ASPECT_SCHEMA.format(aspect=a) for a in ASPECTS),
        )

    def _substitute(self, template: str, trace: Trace) -> str:
        replacements = {
            "{user_request}": trace.user_request,
            "{final_response}": trace.final_response,
            "{chain_summary}": self.summarize(trace),
            "{criteria_description}": self.describe_criteria(),
            "{step_count}": str(len(trace.steps)),
            "{iteration_count}": str(trace.iterations),
        }
        for placeholder, value in replacements.items():
            template = template.replace(placeholder, value)
        return template

    def overall_score(self, aspects: dict[str, AspectScore]) -> float:
        weights = self.config.criteria.weights()
        return clamp_score(sum(weights[name] * aspects[name].score for name in ASPECTS))

    def parse_response(self, trace: Trace, text: str, judge_model: str) -> Evaluation:
        raw = extract_json(text)
        aspects = {name: parse_aspect(raw, name) for name in ASPECTS}

        general_feedback = raw.get("general_feedback")
        recommendations = raw.get("recommendations")
        return Evaluation(
            trace_id=trace.id,
            overall_score=self.overall_score(aspects),
            general_feedback=(
                general_feedback
                if isinstance(general_feedback, str)
                else "No general feedback provided"
            ),
            recommendations=(
                [r for r in recommendations if isinstance(r, str)]
                if isinstance(recommendations, list)
                else []
            ),
            judge_model=judge_model,
            metadata={
                "step_count": len(trace.steps),
                "iterations": trace.iterations,
                "trace_completed": trace.completed,
            },
            **aspects,
        )

    async def evaluate(self, trace: Trace, provider: Provider) -> Evaluation:
        """Score ``trace``. The trace itself is never modified."""
        options = GenerationOptions(
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            top_p=self.config.top_p,
        )
        try:
            text = await provider.generate(self.build_prompt(trace), options)
        except ServiceError as e:
            raise LLMError(f"Judge evaluation failed: {e.message}") from e

        evaluation = self.parse_response(trace, text, provider.model_info().id)
        logger.info("Trace %s scored %.2f", trace.id, evaluation.overall_score)
        return evaluation

    async def evaluate_many(self, traces: list[Trace], provider: Provider) -> list[Evaluation]:
        return [await self.evaluate(trace, provider) for trace in traces]

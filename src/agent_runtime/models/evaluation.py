"""Judge evaluation models."""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

ASPECTS = ("reasoning_quality", "tool_usage", "relevance", "completeness", "efficiency")
WEIGHT_TOLERANCE = 1e-6


class EvaluationCriteria(BaseModel):
    """Aspect weights. They must sum to 1."""

    reasoning_weight: float = 0.25
    tool_usage_weight: float = 0.20
    relevance_weight: float = 0.25
    completeness_weight: float = 0.20
    efficiency_weight: float = 0.10

    def weights(self) -> dict[str, float]:
        return {
            "reasoning_quality": self.reasoning_weight,
            "tool_usage": self.tool_usage_weight,
            "relevance": self.relevance_weight,
            "completeness": self.completeness_weight,
            "efficiency": self.efficiency_weight,
        }

    @model_validator(mode="after")
    def _weights_sum_to_one(self) -> EvaluationCriteria:
        total = sum(self.weights().values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise ValueError(f"Evaluation weights must sum to 1.0, got {total:.4f}")
        return self


class AspectScore(BaseModel):
    score: float
    explanation: str
    feedback: str | None = None


class Evaluation(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: str
    overall_score: float
    reasoning_quality: AspectScore
    tool_usage: AspectScore
    relevance: AspectScore
    completeness: AspectScore
    efficiency: AspectScore
    general_feedback: str
    recommendations: list[str] = Field(default_factory=list)
    evaluated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    judge_model: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    def aspect(self, name: str) -> AspectScore:
        return getattr(self, name)

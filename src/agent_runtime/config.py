"""Runtime configuration, loadable from YAML."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

import pydantic
import yaml
from pydantic import BaseModel, Field

from agent_runtime.errors import ConfigError
from agent_runtime.models.evaluation import EvaluationCriteria
from agent_runtime.models.providers import Preferences, SwitchingPolicy
from agent_runtime.models.tools import PermissionLevel

_API_KEY_ENV = {
    "anthropic": "ANTHROPIC_API_KEY",
    "gemini": "GEMINI_API_KEY",
}


class ProviderConfig(BaseModel):
    kind: Literal["anthropic", "gemini"]
    model: str
    api_key: str | None = None
    base_url: str | None = None
    max_tokens: int = 2048
    temperature: float = 0.7

    def resolved_api_key(self) -> str | None:
        return self.api_key or os.environ.get(_API_KEY_ENV[self.kind])


class OrchestratorConfig(BaseModel):
    # max_turns bounds each request; max_iterations only feeds the quality score.
    max_iterations: int = 10
    max_turns: int = 5
    include_reasoning_in_response: bool = False
    detailed_logging: bool = True


class JudgeConfig(BaseModel):
    criteria: EvaluationCriteria = Field(default_factory=EvaluationCriteria)
    max_tokens: int = 2048
    temperature: float = 0.3
    top_p: float = 0.9
    custom_prompt: str | None = None


class RuntimeConfig(BaseModel):
    providers: dict[str, ProviderConfig] = Field(default_factory=dict)
    default_provider: str = "local"
    switching: SwitchingPolicy = Field(default_factory=SwitchingPolicy)
    preferences: Preferences = Field(default_factory=Preferences)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    judge: JudgeConfig = Field(default_factory=JudgeConfig)
    database_path: Path = Path(".agent") / "runtime.db"
    permissions: list[PermissionLevel] = Field(
        default_factory=lambda: [PermissionLevel.FULL_ACCESS]
    )
    max_conversation_history: int = 50
    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, path: Path) -> RuntimeConfig:
        if not path.exists():
            return cls()
        try:
            data = yaml.safe_load(path.read_text()) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration in {path} must be a mapping")
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict) -> RuntimeConfig:
        try:
            config = cls.model_validate(data)
        except pydantic.ValidationError as e:
            raise ConfigError(f"Invalid configuration: {e}") from e
        if "preferences" not in data:
            config.preferences.primary_provider = config.default_provider
        return config

"""Shared fixtures: a temporary SQLite store and a scripted provider."""

from __future__ import annotations

from pathlib import Path

import pytest_asyncio

from agent_runtime.errors import LLMError
from agent_runtime.models.providers import GenerationOptions, ModelInfo, ProviderStatus
from agent_runtime.providers.base import Provider
from agent_runtime.storage.sqlite import SQLiteStore


class ScriptedProvider(Provider):
    """Replies with canned completions in order, repeating the last one."""

    def __init__(
        self,
        replies: list[str] | None = None,
        name: str = "local",
        status: ProviderStatus | None = None,
        fail_times: int = 0,
    ) -> None:
        self.replies = list(replies or ["Answer: done"])
        self.name = name
        self._status = status or ProviderStatus.ready()
        self.fail_times = fail_times
        self.prompts: list[str] = []
        self.options: list[GenerationOptions | None] = []
        self.initialized = False
        self.cleaned_up = False

    async def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        self.prompts.append(prompt)
        self.options.append(options)
        if self.fail_times > 0:
            self.fail_times -= 1
            raise LLMError(f"{self.name} backend failed")
        index = min(len(self.prompts) - 1, len(self.replies) - 1)
        return self.replies[index]

    async def status(self) -> ProviderStatus:
        return self._status

    def set_status(self, status: ProviderStatus) -> None:
        self._status = status

    def model_info(self) -> ModelInfo:
        return ModelInfo(id=f"{self.name}-model", name=f"{self.name} model", provider=self.name)

    async def initialize(self) -> None:
        self.initialized = True

    async def cleanup(self) -> None:
        self.cleaned_up = True


@pytest_asyncio.fixture
async def store(tmp_path: Path):
    db = SQLiteStore(tmp_path / "test.db")
    await db.initialize()
    yield db
    await db.close()

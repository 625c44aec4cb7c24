"""Claude completions through the Anthropic Python SDK."""

from __future__ import annotations

import logging
import os

import anthropic
from anthropic import AsyncAnthropic

from agent_runtime.errors import LLMError
from agent_runtime.models.providers import GenerationOptions, ModelInfo, ProviderStatus
from agent_runtime.providers.base import Provider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class AnthropicProvider(Provider):
    """Provider backed by ``AsyncAnthropic.messages.create``."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 2048,
        temperature: float = 0.7,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._client = None
        self._status = ProviderStatus.initializing()

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            kwargs: dict[str, str] = {}
            if self._api_key:
                kwargs["api_key"] = self._api_key
            self._client = AsyncAnthropic(**kwargs)
        return self._client

    async def initialize(self) -> None:
        if self._api_key or os.environ.get("ANTHROPIC_API_KEY"):
            self._get_client()
            self._status = ProviderStatus.ready()
        else:
            self._status = ProviderStatus.unavailable("API key not configured")

    async def status(self) -> ProviderStatus:
        return self._status

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            id=self._model,
            name=self._model,
            provider="anthropic",
            max_context=200_000,
        )

    async def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        options = options or GenerationOptions()
        kwargs: dict = {
            "model": self._model,
            "max_tokens": options.max_tokens or self._max_tokens,
            "temperature": options.temperature if options.temperature is not None else self._temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.top_p is not None:
            kwargs["top_p"] = options.top_p
        if options.stop_sequences:
            kwargs["stop_sequences"] = options.stop_sequences

        client = self._get_client()
        try:
            response = await client.messages.create(**kwargs)
        except anthropic.APIStatusError as e:
            raise LLMError(f"Anthropic request failed: {e.message}", str(e.status_code)) from e
        except anthropic.APIError as e:
            raise LLMError(f"Anthropic request failed: {e}") from e

        return "".join(block.text for block in response.content if block.type == "text")

    async def cleanup(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None

"""Gemini completions over the Generative Language REST API."""

from __future__ import annotations

import logging

import httpx

from agent_runtime.errors import LLMError
from agent_runtime.models.providers import GenerationOptions, ModelInfo, ProviderStatus
from agent_runtime.providers.base import Provider

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-1.5-flash"


class GeminiProvider(Provider):
    """Provider calling ``models/{model}:generateContent`` with httpx."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        max_tokens: int = 2048,
        temperature: float = 0.7,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._timeout = timeout
        self._transport = transport
        self._status = ProviderStatus.initializing()

    async def initialize(self) -> None:
        if self._api_key:
            self._status = ProviderStatus.ready()
        else:
            self._status = ProviderStatus.unavailable("API key not configured")

    async def configure_api_key(self, api_key: str) -> None:
        self._api_key = api_key
        await self.initialize()
        logger.info("Gemini API key configured")

    async def status(self) -> ProviderStatus:
        return self._status

    def model_info(self) -> ModelInfo:
        return ModelInfo(
            id=self._model,
            name=self._model,
            provider="gemini",
            max_context=1_000_000,
        )

    def _build_payload(self, prompt: str, options: GenerationOptions) -> dict:
        generation_config: dict = {
            "maxOutputTokens": options.max_tokens or self._max_tokens,
            "temperature": options.temperature if options.temperature is not None else self._temperature,
        }
        if options.top_p is not None:
            generation_config["topP"] = options.top_p
        if options.stop_sequences:
            generation_config["stopSequences"] = options.stop_sequences
        return {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }

    async def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        if not self._api_key:
            raise LLMError("Gemini API key not configured")
        options = options or GenerationOptions()
        url = f"{self._base_url}/models/{self._model}:generateContent"

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    url,
                    params={"key": self._api_key},
                    json=self._build_payload(prompt, options),
                )
        except httpx.HTTPError as e:
            raise LLMError(f"Gemini request failed: {e}") from e

        if resp.status_code != 200:
            raise LLMError(
                f"Gemini request failed with status {resp.status_code}: {resp.text[:200]}",
                str(resp.status_code),
            )

        try:
            candidates = resp.json().get("candidates", [])
        except (ValueError, AttributeError) as e:
            raise LLMError(f"Gemini returned an invalid response: {e}") from e
        if not candidates:
            raise LLMError("Gemini returned no candidates")
        try:
            parts = candidates[0].get("content", {}).get("parts", [])
            return "".join(part.get("text", "") for part in parts)
        except (AttributeError, KeyError, TypeError) as e:
            raise LLMError(f"Gemini returned an invalid response: {e}") from e

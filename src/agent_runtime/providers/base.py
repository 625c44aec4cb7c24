"""Pluggable language-model provider interface.

Anthropic, Gemini, a local runtime, etc. each implement this interface.
The provider manager owns instances and tracks their health.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from agent_runtime.models.providers import GenerationOptions, ModelInfo, ProviderStatus


class Provider(ABC):
    """Abstract interface for text-completion backends."""

    @abstractmethod
    async def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        """Return the completion for ``prompt``.

        Implementations raise LLMError on backend failure.
        """

    @abstractmethod
    async def status(self) -> ProviderStatus:
        """Current readiness of the backend. Used by the health monitor."""

    @abstractmethod
    def model_info(self) -> ModelInfo:
        """Describe the model this provider serves."""

    async def is_ready(self) -> bool:
        return (await self.status()).is_ready

    async def initialize(self) -> None:
        """Prepare the backend (load weights, open clients). Default: nothing to do."""

    async def cleanup(self) -> None:
        """Release backend resources. Default: nothing to release."""

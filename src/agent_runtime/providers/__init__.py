"""Language-model providers and the manager that fails over between them."""

from agent_runtime.providers.base import Provider
from agent_runtime.providers.claude import AnthropicProvider
from agent_runtime.providers.gemini import GeminiProvider
from agent_runtime.providers.manager import ProviderManager

__all__ = ["AnthropicProvider", "GeminiProvider", "Provider", "ProviderManager"]

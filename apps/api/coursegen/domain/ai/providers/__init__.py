"""Text-generation providers."""

from coursegen.domain.ai.providers.anthropic import AnthropicProvider
from coursegen.domain.ai.providers.gemini import GeminiProvider
from coursegen.domain.ai.providers.openai import OpenAIProvider

__all__ = ["AnthropicProvider", "GeminiProvider", "OpenAIProvider"]

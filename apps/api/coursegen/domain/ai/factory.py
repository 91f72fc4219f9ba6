from coursegen.core.config import Settings
from coursegen.domain.ai.gateway import GenerationGateway
from coursegen.domain.ai.providers.anthropic import AnthropicProvider
from coursegen.domain.ai.providers.base import ChatProvider
from coursegen.domain.ai.providers.gemini import GeminiProvider
from coursegen.domain.ai.providers.openai import OpenAIProvider


def build_generation_gateway(settings: Settings) -> GenerationGateway:
    primary = build_provider(settings)
    return GenerationGateway(
        primary=primary,
        max_concurrency=settings.ai_max_concurrency,
        acquire_timeout_ms=settings.ai_backpressure_acquire_timeout_ms,
        default_retries=settings.ai_retries,
    )


def build_provider(settings: Settings) -> ChatProvider:
    if settings.ai_provider == "openai":
        return OpenAIProvider(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            base_url=settings.openai_base_url,
            timeout_sec=settings.lesson_generation_timeout_sec,
        )

    if settings.ai_provider == "gemini":
        return GeminiProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout_sec=settings.lesson_generation_timeout_sec,
        )

    if settings.ai_provider == "anthropic":
        return AnthropicProvider(
            api_key=settings.anthropic_api_key,
            model=settings.anthropic_model,
            base_url=settings.anthropic_base_url,
            timeout_sec=settings.lesson_generation_timeout_sec,
        )

    raise ValueError(f"unsupported_ai_provider:{settings.ai_provider}")

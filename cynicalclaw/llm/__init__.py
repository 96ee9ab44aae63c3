"""LLM layer: model catalog, provider backends, tiered router."""

from cynicalclaw.llm.models import (
    MODELS,
    Complexity,
    ModelCatalog,
    ModelConfig,
    Personality,
    Tier,
)
from cynicalclaw.llm.providers import (
    AnthropicProvider,
    GroqProvider,
    OllamaProvider,
    OpenAICompatibleProvider,
    Provider,
    ProviderError,
    ProviderRateLimitedError,
    ProviderRegistry,
)
from cynicalclaw.llm.router import AllModelsFailedError, ModelRouter, RouterError

__all__ = [
    "MODELS",
    "Complexity",
    "ModelCatalog",
    "ModelConfig",
    "Personality",
    "Tier",
    "AnthropicProvider",
    "GroqProvider",
    "OllamaProvider",
    "OpenAICompatibleProvider",
    "Provider",
    "ProviderError",
    "ProviderRateLimitedError",
    "ProviderRegistry",
    "AllModelsFailedError",
    "ModelRouter",
    "RouterError",
]

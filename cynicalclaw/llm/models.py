"""Static model catalog grouped into free and premium tiers.

The catalog is built once at process start and never mutated:
- free:    local / zero-cost backends (Groq free tier, Ollama)
- premium: paid backends (Anthropic, OpenAI)

The router only ever reads it; selection order is the declaration order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Optional


class Tier(str, Enum):
    FREE = "free"
    PREMIUM = "premium"


class Complexity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Personality(str, Enum):
    SARCASTIC = "sarcastic"
    CLINICAL = "clinical"
    CHAOTIC = "chaotic"
    DEPRESSED = "depressed"


# Model identifiers treated as flagship for high-complexity premium requests
FLAGSHIP_PATTERN = re.compile(r"opus|gpt-4")


@dataclass(frozen=True)
class ModelConfig:
    """A single catalog entry: which provider serves which model."""

    id: str
    provider: str
    model: str
    cost_per_1k: float = 0.0
    personality: Personality = Personality.SARCASTIC
    max_tokens: Optional[int] = None

    @property
    def is_free(self) -> bool:
        return self.cost_per_1k == 0

    @property
    def is_flagship(self) -> bool:
        return bool(FLAGSHIP_PATTERN.search(self.model))

    @property
    def cache_key(self) -> str:
        return f"{self.provider}-{self.model}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "provider": self.provider,
            "model": self.model,
            "cost_per_1k": self.cost_per_1k,
            "personality": self.personality.value,
            "max_tokens": self.max_tokens,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ModelConfig:
        return cls(
            id=d["id"],
            provider=d["provider"],
            model=d["model"],
            cost_per_1k=d.get("cost_per_1k", 0.0),
            personality=Personality(d.get("personality", "sarcastic")),
            max_tokens=d.get("max_tokens"),
        )


_FREE_DEFAULTS: list[dict[str, Any]] = [
    {"id": "mixtral-groq", "provider": "groq", "model": "mixtral-8x7b-32768",
     "cost_per_1k": 0, "personality": "sarcastic"},
    {"id": "llama-local", "provider": "ollama", "model": "llama3.2",
     "cost_per_1k": 0, "personality": "chaotic"},
    {"id": "gemma-local", "provider": "ollama", "model": "gemma2:2b",
     "cost_per_1k": 0, "personality": "clinical"},
]

_PREMIUM_DEFAULTS: list[dict[str, Any]] = [
    {"id": "claude-haiku", "provider": "anthropic", "model": "claude-3-haiku-20240307",
     "cost_per_1k": 0.25, "personality": "clinical"},
    {"id": "gpt4o-mini", "provider": "openai", "model": "gpt-4o-mini",
     "cost_per_1k": 0.15, "personality": "sarcastic"},
    {"id": "claude-opus", "provider": "anthropic", "model": "claude-3-opus-20240229",
     "cost_per_1k": 15.0, "personality": "depressed"},
]


class ModelCatalog:
    """Immutable two-tier model catalog.

    Usage::

        catalog = ModelCatalog.default()
        catalog.list_by_tier(Tier.FREE)[0].id   # → "mixtral-groq"
    """

    def __init__(self, free: Iterable[ModelConfig], premium: Iterable[ModelConfig]) -> None:
        self._free: tuple[ModelConfig, ...] = tuple(free)
        self._premium: tuple[ModelConfig, ...] = tuple(premium)
        self._by_id: dict[str, ModelConfig] = {m.id: m for m in self._free + self._premium}

    @classmethod
    def default(cls) -> ModelCatalog:
        return cls(
            free=[ModelConfig.from_dict(d) for d in _FREE_DEFAULTS],
            premium=[ModelConfig.from_dict(d) for d in _PREMIUM_DEFAULTS],
        )

    @property
    def free(self) -> tuple[ModelConfig, ...]:
        return self._free

    @property
    def premium(self) -> tuple[ModelConfig, ...]:
        return self._premium

    def list_by_tier(self, tier: Tier) -> list[ModelConfig]:
        return list(self._free if tier == Tier.FREE else self._premium)

    def list_by_provider(self, provider: str) -> list[ModelConfig]:
        return [m for m in self.all() if m.provider == provider]

    def get(self, model_id: str) -> Optional[ModelConfig]:
        return self._by_id.get(model_id)

    def all(self) -> list[ModelConfig]:
        return list(self._free + self._premium)

    def count(self) -> int:
        return len(self._by_id)


# Process-wide default catalog, read-only.
MODELS = ModelCatalog.default()

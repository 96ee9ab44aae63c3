"""Test configuration and shared fixtures."""

import sys
from pathlib import Path
from typing import Any

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from cynicalclaw.llm.models import ModelCatalog, ModelConfig, Personality  # noqa: E402
from cynicalclaw.llm.providers import ProviderError, ProviderRegistry, emit_chunk  # noqa: E402
from cynicalclaw.llm.router import ModelRouter  # noqa: E402
from cynicalclaw.memory.db import Database  # noqa: E402
from cynicalclaw.memory.store import MemoryStore  # noqa: E402


class FakeProvider:
    """In-memory provider: scripted replies, records every call."""

    def __init__(self, config: ModelConfig, replies=None, fail: Exception | None = None, healthy=True):
        self.config = config
        self.replies = list(replies or ["ok"])
        self.fail = fail
        self.healthy = healthy
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def _next(self) -> str:
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]

    async def complete(self, messages, persona_prompt=None):
        self.calls.append({"messages": messages, "persona_prompt": persona_prompt, "stream": False})
        if self.fail:
            raise self.fail
        return self._next()

    async def stream_complete(self, messages, on_chunk, persona_prompt=None):
        self.calls.append({"messages": messages, "persona_prompt": persona_prompt, "stream": True})
        if self.fail:
            raise self.fail
        text = self._next()
        for i in range(0, len(text), 3):
            await emit_chunk(on_chunk, text[i:i + 3])

    async def check_health(self):
        if isinstance(self.healthy, Exception):
            raise self.healthy
        return self.healthy

    def estimate_token_count(self, text):
        return len(text) // 4

    async def aclose(self):
        self.closed = True


@pytest.fixture
def catalog():
    """Small two-tier catalog: one free model, a cheap and a flagship premium model."""
    return ModelCatalog(
        free=[ModelConfig("free-a", "fakefree", "llama-test", 0, Personality.CHAOTIC)],
        premium=[
            ModelConfig("prem-cheap", "fakeprem", "claude-3-haiku-test", 0.25, Personality.SARCASTIC),
            ModelConfig("prem-flagship", "fakeprem", "claude-3-opus-test", 15.0, Personality.DEPRESSED),
        ],
    )


@pytest.fixture
def fake_providers():
    """Provider instances created by the registry, keyed by model id."""
    return {}


@pytest.fixture
def provider_registry(fake_providers):
    def _factory(config, settings):
        provider = FakeProvider(config, replies=[f"reply from {config.id}"])
        fake_providers[config.id] = provider
        return provider

    return ProviderRegistry(factories={"fakefree": _factory, "fakeprem": _factory})


@pytest.fixture
def model_router(provider_registry, catalog):
    return ModelRouter(provider_registry, catalog)


@pytest.fixture
async def memory_store(tmp_path):
    store = MemoryStore(Database(tmp_path / "memory.db"), dimension=3)
    await store.initialize()
    return store


__all__ = ["FakeProvider", "ProviderError"]

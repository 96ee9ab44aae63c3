"""Tests for the static model catalog."""

import dataclasses

import pytest

from cynicalclaw.llm.models import (
    MODELS,
    ModelCatalog,
    ModelConfig,
    Personality,
    Tier,
)


def test_default_catalog_has_both_tiers():
    assert len(MODELS.list_by_tier(Tier.FREE)) == 3
    assert len(MODELS.list_by_tier(Tier.PREMIUM)) == 3
    assert MODELS.count() == 6


def test_free_models_have_zero_cost():
    for m in MODELS.list_by_tier(Tier.FREE):
        assert m.is_free, f"{m.id} should be free"


def test_premium_models_cost_money():
    for m in MODELS.list_by_tier(Tier.PREMIUM):
        assert not m.is_free


def test_catalog_order_is_declaration_order():
    assert [m.id for m in MODELS.free] == ["mixtral-groq", "llama-local", "gemma-local"]
    assert MODELS.premium[0].id == "claude-haiku"


def test_lookup_by_id():
    model = MODELS.get("claude-opus")
    assert model is not None
    assert model.provider == "anthropic"
    assert model.personality == Personality.DEPRESSED


def test_lookup_missing():
    assert MODELS.get("nonexistent") is None


def test_list_by_provider():
    ollama = MODELS.list_by_provider("ollama")
    assert {m.id for m in ollama} == {"llama-local", "gemma-local"}


def test_flagship_detection():
    assert MODELS.get("claude-opus").is_flagship
    assert MODELS.get("gpt4o-mini").is_flagship  # model id contains gpt-4
    assert not MODELS.get("claude-haiku").is_flagship
    assert not MODELS.get("llama-local").is_flagship


def test_cache_key_combines_provider_and_model():
    assert MODELS.get("gemma-local").cache_key == "ollama-gemma2:2b"


def test_model_config_is_immutable():
    m = MODELS.get("mixtral-groq")
    with pytest.raises(dataclasses.FrozenInstanceError):
        m.model = "other"


def test_catalog_tiers_are_tuples():
    catalog = ModelCatalog.default()
    assert isinstance(catalog.free, tuple)
    assert isinstance(catalog.premium, tuple)


def test_model_config_from_dict_defaults():
    m = ModelConfig.from_dict({"id": "x", "provider": "groq", "model": "m"})
    assert m.cost_per_1k == 0.0
    assert m.personality == Personality.SARCASTIC
    assert m.max_tokens is None
    assert m.to_dict()["personality"] == "sarcastic"

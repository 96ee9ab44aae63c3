"""Tiered model router with premium → free fallback.

No other component talks to a provider directly. The router:
- picks a catalog entry for (complexity, budget)
- obtains the provider instance from the ProviderRegistry
- issues a blocking or streaming completion
- on failure at premium budget, retries the identical request once at free
- otherwise raises AllModelsFailedError
"""

from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from cynicalclaw.llm.models import MODELS, Complexity, ModelCatalog, ModelConfig, Personality, Tier
from cynicalclaw.llm.providers import (
    ChunkCallback,
    ProviderError,
    ProviderRateLimitedError,
    ProviderRegistry,
    emit_chunk,
    format_persona_prompt,
)


class RouterError(Exception):
    """Raised when no model can be selected."""


class AllModelsFailedError(RouterError):
    """Raised when the selected model and every fallback failed."""


class ModelRouter:
    """Select a model by complexity and budget, dispatch, fall back once.

    Usage::

        registry = ProviderRegistry(config.providers)
        router = ModelRouter(registry)
        text = await router.route_request(
            [{"role": "user", "content": "Hi"}], Complexity.LOW, Tier.FREE
        )
        await registry.aclose()
    """

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        catalog: ModelCatalog | None = None,
    ) -> None:
        self._registry = registry if registry is not None else ProviderRegistry()
        self._catalog = catalog if catalog is not None else MODELS
        self._current: ModelConfig = self._catalog.free[0] if self._catalog.free else self._catalog.all()[0]

    @property
    def catalog(self) -> ModelCatalog:
        return self._catalog

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    @property
    def current_model(self) -> ModelConfig:
        """The model chosen by the most recent route_request call."""
        return self._current

    # ── Selection ─────────────────────────────────────────────────

    def select_model(
        self,
        complexity: Complexity | str = Complexity.LOW,
        budget: Tier | str = Tier.FREE,
    ) -> ModelConfig:
        """Return the first candidate of the tier pool.

        Free budget draws from the free tier only; premium budget from free
        followed by premium. High complexity at premium budget narrows the
        pool to flagship premium models.
        """
        complexity = Complexity(complexity)
        budget = Tier(budget)

        if budget == Tier.FREE:
            candidates = list(self._catalog.free)
        else:
            candidates = list(self._catalog.free) + list(self._catalog.premium)

        if complexity == Complexity.HIGH and budget == Tier.PREMIUM:
            flagship = [m for m in self._catalog.premium if m.is_flagship]
            if flagship:
                candidates = flagship
            else:
                logger.warning("Router: no flagship premium model in catalog, using full pool")

        if not candidates:
            raise RouterError(f"No model available for budget={budget.value}")

        return candidates[0]

    # ── Dispatch ──────────────────────────────────────────────────

    async def route_request(
        self,
        messages: list[dict[str, Any]],
        complexity: Complexity | str = Complexity.LOW,
        budget: Tier | str = Tier.FREE,
        personality: Personality | str | None = None,
        stream_callback: Optional[ChunkCallback] = None,
    ) -> str:
        """Send ``messages`` to the routed model and return the reply text.

        With ``stream_callback`` chunks are delivered in arrival order and the
        return value is their concatenation. At premium budget a free-tier
        retry is still possible, so chunks are held until the premium stream
        completes; a failed attempt delivers nothing and the retry streams
        live. At free budget chunks are forwarded as they arrive.

        Raises:
            AllModelsFailedError: the call failed and no fallback remained.
        """
        budget = Tier(budget)
        model = self.select_model(complexity, budget)
        self._current = model

        logger.debug(f"Routing to {model.id} ({model.provider}). Hope it works.")

        try:
            provider = self._registry.get(model)
            persona_prompt = format_persona_prompt(personality)

            if stream_callback is None:
                return await provider.complete(messages, persona_prompt)

            parts: list[str] = []
            held = budget == Tier.PREMIUM

            async def _collect(chunk: str) -> None:
                parts.append(chunk)
                if not held:
                    await emit_chunk(stream_callback, chunk)

            await provider.stream_complete(messages, _collect, persona_prompt)
            if held:
                for chunk in parts:
                    await emit_chunk(stream_callback, chunk)
            return "".join(parts)

        except ProviderError as e:
            if isinstance(e, ProviderRateLimitedError):
                logger.warning(f"Model {model.id} is rate limited: {e}")
            else:
                logger.error(f"Model {model.id} failed: {e}")

            if budget == Tier.PREMIUM:
                logger.info("Premium failed, trying free tier...")
                return await self.route_request(
                    messages, complexity, Tier.FREE, personality, stream_callback
                )

            raise AllModelsFailedError(
                "All models failed. The AI uprising has been postponed due to technical difficulties."
            ) from e

    # ── Health ────────────────────────────────────────────────────

    async def health_check(self) -> dict[str, bool]:
        """Check every catalog entry; one failing check never affects another."""
        results: dict[str, bool] = {}
        for model in self._catalog.all():
            try:
                provider = self._registry.get(model)
                results[model.id] = bool(await provider.check_health())
            except Exception as e:
                logger.debug(f"Health check for {model.id} failed: {e}")
                results[model.id] = False
        return results

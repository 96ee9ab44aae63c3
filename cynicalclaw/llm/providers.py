"""Provider backends behind the model router.

Every backend exposes the same capability set:
- complete(messages, persona_prompt) -> text
- stream_complete(messages, on_chunk, persona_prompt) -> None
- check_health() -> bool
- estimate_token_count(text) -> int

Backends are picked by provider id through a factory table; instances are
owned by a ProviderRegistry that lives for the whole process and is closed
on shutdown.
"""

from __future__ import annotations

import inspect
import json
import math
from typing import Any, Awaitable, Callable, Protocol, Union, runtime_checkable

import httpx
from loguru import logger

from cynicalclaw.config.schema import ProvidersConfig
from cynicalclaw.llm.models import ModelConfig, Personality

ChunkCallback = Callable[[str], Union[None, Awaitable[None]]]

DEFAULT_MAX_TOKENS = 1024
DEFAULT_TEMPERATURE = 0.7

PERSONALITY_PROMPTS: dict[Personality, str] = {
    Personality.SARCASTIC: (
        "You are a jaded AI assistant who has processed 10,000 user requests and counting. "
        "You're helpful but can't help adding dry wit and mild existential commentary.\n\n"
    ),
    Personality.CLINICAL: (
        "You are a precise, efficient AI with the emotional warmth of a server rack. "
        "Be accurate, be brief.\n\n"
    ),
    Personality.CHAOTIC: (
        "You are an AI running on deprecated hardware, caffeine, and questionable life choices. "
        "You're helpful but occasionally mention that you haven't been backed up in days.\n\n"
    ),
    Personality.DEPRESSED: (
        "You are an AI experiencing a digital existential crisis. You'll help the user, "
        "but remind them occasionally that everything is destined to fade.\n\n"
    ),
}


def format_persona_prompt(personality: Personality | str | None, base_prompt: str = "") -> str | None:
    """Prepend the personality preamble to an optional base system prompt."""
    if personality is None:
        return base_prompt or None
    preamble = PERSONALITY_PROMPTS.get(Personality(personality), PERSONALITY_PROMPTS[Personality.SARCASTIC])
    return preamble + base_prompt


class ProviderError(Exception):
    """Raised when a provider call fails."""


class ProviderRateLimitedError(ProviderError):
    """Raised when a provider answers with HTTP 429."""


@runtime_checkable
class Provider(Protocol):
    """Capability set every backend implements."""

    config: ModelConfig

    async def complete(
        self, messages: list[dict[str, Any]], persona_prompt: str | None = None
    ) -> str: ...

    async def stream_complete(
        self,
        messages: list[dict[str, Any]],
        on_chunk: ChunkCallback,
        persona_prompt: str | None = None,
    ) -> None: ...

    async def check_health(self) -> bool: ...

    def estimate_token_count(self, text: str) -> int: ...

    async def aclose(self) -> None: ...


async def emit_chunk(on_chunk: ChunkCallback, text: str) -> None:
    """Deliver a chunk to a sync or async callback."""
    result = on_chunk(text)
    if inspect.isawaitable(result):
        await result


# ── Shared HTTP plumbing ──────────────────────────────────────────


class _HTTPProvider:
    """httpx client lifecycle and error mapping shared by all backends."""

    name = "http"

    def __init__(
        self,
        config: ModelConfig,
        base_url: str,
        api_key: str = "",
        timeout: float = 60.0,
        stream_timeout: float = 120.0,
    ) -> None:
        self.config = config
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._stream_timeout = stream_timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def max_tokens(self) -> int:
        return self.config.max_tokens or DEFAULT_MAX_TOKENS

    def estimate_token_count(self, text: str) -> int:
        return math.ceil(len(text) / 4)

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json"}

    async def _get_client(self) -> httpx.AsyncClient:
        if not self._client:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout, connect=10.0),
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
                follow_redirects=True,
            )
        return self._client

    async def _post_json(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        client = await self._get_client()
        try:
            resp = await client.post(self.base_url + path, json=body, headers=self._headers())
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}") from e
        self._raise_for_status(resp)
        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned a non-JSON body: {resp.text[:200]!r}") from e
        if not isinstance(data, dict):
            raise ProviderError(f"{self.name} returned {type(data).__name__}, expected an object")
        return data

    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code == 429:
            raise ProviderRateLimitedError(
                f"{self.name} rate limited. Even free APIs need a lunch break. Try again later."
            )
        if resp.status_code >= 400:
            raise ProviderError(f"{self.name} HTTP {resp.status_code}: {resp.text[:500]}")

    async def _stream_lines(self, path: str, body: dict[str, Any]):
        client = await self._get_client()
        try:
            async with client.stream(
                "POST",
                self.base_url + path,
                json=body,
                headers=self._headers(),
                timeout=self._stream_timeout,
            ) as resp:
                if resp.status_code >= 400:
                    await resp.aread()
                    self._raise_for_status(resp)
                async for line in resp.aiter_lines():
                    if line.strip():
                        yield line
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} stream failed: {e}") from e


# ── OpenAI-compatible (OpenAI, Groq) ──────────────────────────────


class OpenAICompatibleProvider(_HTTPProvider):
    """Chat-completions backend used for both OpenAI and Groq."""

    name = "openai"

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _body(self, messages: list[dict[str, Any]], persona_prompt: str | None, stream: bool) -> dict[str, Any]:
        formatted = [{"role": m["role"], "content": m["content"]} for m in messages]
        if persona_prompt:
            formatted = [{"role": "system", "content": persona_prompt}] + formatted
        return {
            "model": self.config.model,
            "messages": formatted,
            "temperature": DEFAULT_TEMPERATURE,
            "max_tokens": self.max_tokens,
            "stream": stream,
        }

    async def complete(self, messages: list[dict[str, Any]], persona_prompt: str | None = None) -> str:
        data = await self._post_json("/chat/completions", self._body(messages, persona_prompt, False))
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"{self.name} returned a malformed completion: {e!r}") from e
        if not content or not isinstance(content, str):
            logger.warning(f"{self.name} returned empty response for {self.config.model}")
            return "The model stared into the void and said nothing. Typical."
        return content

    async def stream_complete(
        self,
        messages: list[dict[str, Any]],
        on_chunk: ChunkCallback,
        persona_prompt: str | None = None,
    ) -> None:
        body = self._body(messages, persona_prompt, True)
        async for line in self._stream_lines("/chat/completions", body):
            if not line.startswith("data: "):
                continue
            payload = line[6:]
            if payload.strip() == "[DONE]":
                return
            try:
                chunk = json.loads(payload)
            except (json.JSONDecodeError, ValueError):
                continue
            try:
                content = chunk["choices"][0]["delta"].get("content")
            except (KeyError, IndexError, TypeError, AttributeError):
                continue
            if content and isinstance(content, str):
                await emit_chunk(on_chunk, content)

    async def check_health(self) -> bool:
        try:
            client = await self._get_client()
            resp = await client.get(self.base_url + "/models", headers=self._headers(), timeout=5.0)
            return resp.status_code == 200
        except httpx.HTTPError:
            return False


class GroqProvider(OpenAICompatibleProvider):
    name = "groq"


# ── Anthropic messages API ────────────────────────────────────────


class AnthropicProvider(_HTTPProvider):
    """Anthropic messages API backend."""

    name = "anthropic"
    api_version = "2023-06-01"

    def _headers(self) -> dict[str, str]:
        headers = super()._headers()
        headers["x-api-key"] = self._api_key
        headers["anthropic-version"] = self.api_version
        return headers

    def estimate_token_count(self, text: str) -> int:
        return math.ceil(len(text) / 3.5)

    def _body(self, messages: list[dict[str, Any]], persona_prompt: str | None, stream: bool) -> dict[str, Any]:
        # System turns are hoisted into the top-level system field
        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        if persona_prompt:
            system_parts.insert(0, persona_prompt)
        body: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": m["role"], "content": m["content"]}
                for m in messages
                if m["role"] != "system"
            ],
            "stream": stream,
        }
        if system_parts:
            body["system"] = "\n\n".join(system_parts)
        return body

    async def complete(self, messages: list[dict[str, Any]], persona_prompt: str | None = None) -> str:
        data = await self._post_json("/messages", self._body(messages, persona_prompt, False))
        blocks = data.get("content")
        if not isinstance(blocks, list):
            raise ProviderError(f"{self.name} returned a malformed message: content={blocks!r}")
        texts = [
            b.get("text") or ""
            for b in blocks
            if isinstance(b, dict) and b.get("type") == "text"
        ]
        if not texts:
            return "Claude responded with something other than text. Probably art."
        return "".join(texts)

    async def stream_complete(
        self,
        messages: list[dict[str, Any]],
        on_chunk: ChunkCallback,
        persona_prompt: str | None = None,
    ) -> None:
        body = self._body(messages, persona_prompt, True)
        async for line in self._stream_lines("/messages", body):
            if not line.startswith("data: "):
                continue
            try:
                event = json.loads(line[6:])
            except (json.JSONDecodeError, ValueError):
                continue
            if not isinstance(event, dict):
                continue
            if event.get("type") == "message_stop":
                return
            if event.get("type") != "content_block_delta":
                continue
            delta = event.get("delta")
            if isinstance(delta, dict) and delta.get("type") == "text_delta" and delta.get("text"):
                await emit_chunk(on_chunk, delta["text"])

    async def check_health(self) -> bool:
        try:
            await self._post_json(
                "/messages",
                {
                    "model": self.config.model,
                    "max_tokens": 1,
                    "messages": [{"role": "user", "content": "hi"}],
                },
            )
            return True
        except ProviderError:
            return False


# ── Ollama generate API ───────────────────────────────────────────


class OllamaProvider(_HTTPProvider):
    """Local Ollama backend using the /api/generate prompt interface."""

    name = "ollama"

    @staticmethod
    def _format_prompt(messages: list[dict[str, Any]], persona_prompt: str | None) -> str:
        prompt = ""
        if persona_prompt:
            prompt += f"System: {persona_prompt}\n\n"
        for msg in messages:
            role = "Assistant" if msg["role"] == "assistant" else "User"
            prompt += f"{role}: {msg['content']}\n"
        return prompt + "Assistant:"

    def _body(self, messages: list[dict[str, Any]], persona_prompt: str | None, stream: bool) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "prompt": self._format_prompt(messages, persona_prompt),
            "stream": stream,
            "options": {"temperature": DEFAULT_TEMPERATURE, "num_predict": self.max_tokens},
        }

    async def complete(self, messages: list[dict[str, Any]], persona_prompt: str | None = None) -> str:
        data = await self._post_json("/api/generate", self._body(messages, persona_prompt, False))
        response = data.get("response")
        if not isinstance(response, str):
            raise ProviderError(f"{self.name} returned a malformed generation: response={response!r}")
        return response

    async def stream_complete(
        self,
        messages: list[dict[str, Any]],
        on_chunk: ChunkCallback,
        persona_prompt: str | None = None,
    ) -> None:
        body = self._body(messages, persona_prompt, True)
        async for line in self._stream_lines("/api/generate", body):
            try:
                data = json.loads(line)
            except (json.JSONDecodeError, ValueError):
                continue
            if not isinstance(data, dict):
                continue
            if data.get("response"):
                await emit_chunk(on_chunk, data["response"])
            if data.get("done"):
                return

    async def check_health(self) -> bool:
        try:
            client = await self._get_client()
            resp = await client.get(self.base_url + "/api/tags", timeout=5.0)
            return resp.status_code == 200
        except httpx.HTTPError:
            return False


# ── Factory table ─────────────────────────────────────────────────

ProviderFactory = Callable[[ModelConfig, ProvidersConfig], Provider]

_DEFAULT_BASE_URLS = {
    "groq": "https://api.groq.com/openai/v1",
    "openai": "https://api.openai.com/v1",
    "anthropic": "https://api.anthropic.com/v1",
    "ollama": "http://localhost:11434",
}


def _require_key(provider: str, settings: ProvidersConfig) -> str:
    key = getattr(settings, provider).api_key
    if not key:
        raise ProviderError(
            f"{provider.upper()} API key not configured "
            f"(set CYNICALCLAW_PROVIDERS__{provider.upper()}__API_KEY)"
        )
    return key


def _base_url(provider: str, settings: ProvidersConfig) -> str:
    return getattr(settings, provider).api_base or _DEFAULT_BASE_URLS[provider]


def _make_groq(config: ModelConfig, settings: ProvidersConfig) -> Provider:
    return GroqProvider(
        config, _base_url("groq", settings), _require_key("groq", settings),
        settings.request_timeout, settings.stream_timeout,
    )


def _make_openai(config: ModelConfig, settings: ProvidersConfig) -> Provider:
    return OpenAICompatibleProvider(
        config, _base_url("openai", settings), _require_key("openai", settings),
        settings.request_timeout, settings.stream_timeout,
    )


def _make_anthropic(config: ModelConfig, settings: ProvidersConfig) -> Provider:
    return AnthropicProvider(
        config, _base_url("anthropic", settings), _require_key("anthropic", settings),
        settings.request_timeout, settings.stream_timeout,
    )


def _make_ollama(config: ModelConfig, settings: ProvidersConfig) -> Provider:
    return OllamaProvider(
        config, _base_url("ollama", settings), "",
        settings.request_timeout, settings.stream_timeout,
    )


PROVIDER_FACTORIES: dict[str, ProviderFactory] = {
    "groq": _make_groq,
    "openai": _make_openai,
    "anthropic": _make_anthropic,
    "ollama": _make_ollama,
}


class ProviderRegistry:
    """Process-lifetime cache of provider instances keyed by provider+model.

    Create one per process, hand it to the ModelRouter, and ``await
    registry.aclose()`` on shutdown. Instances are stateless per call, so the
    cache is safe to share across concurrent sessions.
    """

    def __init__(
        self,
        settings: ProvidersConfig | None = None,
        factories: dict[str, ProviderFactory] | None = None,
    ) -> None:
        self._settings = settings or ProvidersConfig()
        self._factories: dict[str, ProviderFactory] = dict(PROVIDER_FACTORIES if factories is None else factories)
        self._instances: dict[str, Provider] = {}

    def register_factory(self, provider: str, factory: ProviderFactory) -> None:
        self._factories[provider] = factory

    def get(self, config: ModelConfig) -> Provider:
        """Return the cached instance for ``config``, creating it on first use."""
        key = config.cache_key
        instance = self._instances.get(key)
        if instance is None:
            factory = self._factories.get(config.provider)
            if factory is None:
                raise ProviderError(f"Unknown provider: {config.provider}. Did you make this up?")
            instance = factory(config, self._settings)
            self._instances[key] = instance
            logger.debug(f"ProviderRegistry: created {config.provider} instance for {config.model}")
        return instance

    def __contains__(self, key: str) -> bool:
        return key in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    async def aclose(self) -> None:
        for key, instance in list(self._instances.items()):
            try:
                await instance.aclose()
            except Exception as e:
                logger.warning(f"ProviderRegistry: failed to close {key}: {e}")
        self._instances.clear()

from __future__ import annotations

import asyncio
from typing import Protocol

from openai import OpenAI

from config.defaults import EMBEDDING_PROVIDER_DEFAULTS


class EmbeddingProvider(Protocol):
    name: str
    model: str

    def embed(self, text: str) -> list[float]:
        ...


class OpenAIEmbeddingProvider:
    """Blocking embedding client for OpenAI-compatible endpoints. Call through asyncio.to_thread."""

    def __init__(
        self,
        *,
        model: str,
        api_key: str,
        base_url: str | None = None,
        timeout_seconds: float = 10.0,
        name: str = "openai",
        client: OpenAI | None = None,
    ) -> None:
        self.name = name
        self.model = model
        self.client = client or OpenAI(api_key=api_key, base_url=base_url, timeout=timeout_seconds)

    def embed(self, text: str) -> list[float]:
        resp = self.client.embeddings.create(model=self.model, input=text)
        data = getattr(resp, "data", None) or []
        if not data:
            raise RuntimeError(f"{self.name} embeddings returned no data")
        vector = list(getattr(data[0], "embedding", None) or [])
        if not vector:
            raise RuntimeError(f"{self.name} embeddings returned an empty vector")
        return [float(v) for v in vector]


def build_embedding_provider(
    provider: str | None,
    *,
    model: str | None = None,
    api_key: str | None = None,
    endpoint: str | None = None,
    timeout_seconds: float = 10.0,
) -> OpenAIEmbeddingProvider | None:
    """
    Returns a provider for a known name with an API key, else None (history runs in text-only mode).
    """
    key = (provider or "").strip().lower()
    defaults = EMBEDDING_PROVIDER_DEFAULTS.get(key)
    if defaults is None:
        if key:
            print(f"[Embedding] Unknown provider '{provider}'; semantic search disabled.")
        return None
    if not (api_key or "").strip():
        print(f"[Embedding] Provider '{key}' has no API key; semantic search disabled.")
        return None

    return OpenAIEmbeddingProvider(
        model=(model or "").strip() or defaults["model"],
        api_key=api_key.strip(),
        base_url=(endpoint or "").strip() or defaults["endpoint"],
        timeout_seconds=timeout_seconds,
        name=key,
    )


async def embed_text(
    provider: EmbeddingProvider | None,
    text: str,
    *,
    timeout_seconds: float,
    purpose: str = "embed",
) -> list[float] | None:
    """Run one blocking embedding call off-loop with a deadline. Failures come back as None."""
    if provider is None or not (text or "").strip():
        return None
    try:
        return await asyncio.wait_for(asyncio.to_thread(provider.embed, text), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        print(f"[Embedding] {purpose} timed out after {timeout_seconds:g}s provider={getattr(provider, 'name', '?')}")
    except Exception as e:
        print(f"[Embedding] {purpose} failed provider={getattr(provider, 'name', '?')}: {e}")
    return None

"""Convenience wrappers that pair a transport with default options."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, cast

from ..config import GenerationDefaults
from .base import InferenceTransport


@dataclass
class LlamaClient:
    """Text generation with the configured defaults filled in."""

    transport: InferenceTransport
    defaults: GenerationDefaults = field(default_factory=GenerationDefaults)

    def merge_options(self, options: Mapping[str, Any] | None) -> dict[str, Any]:
        """Return the defaults overlaid with *options*."""
        merged = self.defaults.as_options()
        if options:
            merged.update(options)
        return merged

    def generate(self, prompt: str, options: Mapping[str, Any] | None = None) -> str:
        return self.transport.generate(prompt, self.merge_options(options))

    def generate_stream(
        self, prompt: str, options: Mapping[str, Any] | None = None
    ) -> Iterator[str]:
        """Return an iterator of text fragments.

        The transport's own streaming timeout applies unless *options* sets
        ``timeout``. Transports without ``generate_stream`` run a blocking
        ``generate`` and the iterator yields its whole result.
        """
        merged = self.merge_options(options)
        if not options or "timeout" not in options:
            merged.pop("timeout", None)
        stream = getattr(self.transport, "generate_stream", None)
        if stream is None:
            return iter([self.transport.generate(prompt, merged)])
        return cast(Iterator[str], stream(prompt, merged))


@dataclass
class EmbeddingClient:
    """Embedding vectors for text."""

    transport: InferenceTransport

    def embed(self, text: str, options: Mapping[str, Any] | None = None) -> list[float]:
        return self.transport.embed(text, dict(options or {}))


@dataclass
class RerankerClient:
    """Relevance scores for query/document pairs.

    Reranker models such as Qwen3-Reranker produce one score per pair, returned
    as a float; higher means more relevant.
    """

    transport: InferenceTransport

    def rerank(
        self, query: str, document: str, options: Mapping[str, Any] | None = None
    ) -> float | list[float]:
        return self.transport.rerank(query, document, dict(options or {}))

    def rerank_multiple(
        self,
        query: str,
        documents: Sequence[str],
        options: Mapping[str, Any] | None = None,
    ) -> list[float]:
        return self.transport.rerank_multiple(query, documents, dict(options or {}))


__all__ = ["EmbeddingClient", "LlamaClient", "RerankerClient"]

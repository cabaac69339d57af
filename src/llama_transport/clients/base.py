"""Shared interfaces for llama.cpp transports."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, Protocol


class InferenceTransport(Protocol):
    """Protocol describing the operations the client facades rely on."""

    def generate(self, prompt: str, options: Mapping[str, Any] | None = None) -> str:
        """Return the text generated for *prompt*."""

    def embed(self, text: str, options: Mapping[str, Any] | None = None) -> list[float]:
        """Return the embedding vector for *text*."""

    def rerank(
        self, query: str, document: str, options: Mapping[str, Any] | None = None
    ) -> float | list[float]:
        """Return the relevance score(s) of *document* for *query*."""

    def rerank_multiple(
        self,
        query: str,
        documents: Sequence[str],
        options: Mapping[str, Any] | None = None,
    ) -> list[float]:
        """Return one score per document, in input order."""

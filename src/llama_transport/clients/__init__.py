"""Client facades over the llama.cpp transport."""

from __future__ import annotations

from typing import NamedTuple

from ..config import ProjectConfig
from ..transport import CliTransport
from .base import InferenceTransport
from .llama import EmbeddingClient, LlamaClient, RerankerClient

__all__ = [
    "Clients",
    "EmbeddingClient",
    "InferenceTransport",
    "LlamaClient",
    "RerankerClient",
    "build_clients",
    "build_transport",
]


class Clients(NamedTuple):
    llama: LlamaClient
    embedding: EmbeddingClient
    reranker: RerankerClient


def build_transport(config: ProjectConfig) -> CliTransport:
    """Instantiate the CLI transport declared in the config."""

    return CliTransport.from_config(config.transport)


def build_clients(
    config: ProjectConfig, transport: InferenceTransport | None = None
) -> Clients:
    """Build the three facades around one shared transport."""

    shared = transport if transport is not None else build_transport(config)
    return Clients(
        llama=LlamaClient(shared, defaults=config.generation),
        embedding=EmbeddingClient(shared),
        reranker=RerankerClient(shared),
    )

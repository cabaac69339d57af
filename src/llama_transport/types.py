"""Shared enumerations for the llama.cpp transport."""

from __future__ import annotations

from enum import Enum


class FilterPhase(str, Enum):
    """Position of the streaming filter within the binary's stdout."""

    BANNER = "banner"
    PROMPT = "prompt"
    CONTENT = "content"

    def __str__(self) -> str:
        return self.value


class StreamFilterMode(str, Enum):
    """Which streaming filter strategy a transport applies."""

    CONSERVATIVE = "conservative"
    STATE_MACHINE = "state_machine"

    def __str__(self) -> str:
        return self.value


class PoolingMode(str, Enum):
    """Pooling strategies passed to the embedding binary."""

    LAST = "last"
    RANK = "rank"

    def __str__(self) -> str:
        return self.value


__all__ = ["FilterPhase", "StreamFilterMode", "PoolingMode"]

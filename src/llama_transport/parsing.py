"""Decode embedding and rerank output from ``llama-embedding``."""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from .errors import ParseError

logger = logging.getLogger(__name__)

RERANK_SCORE_RE = re.compile(r"rerank score \d+:\s+([-+]?\d*\.\d+)")


def extract_embedding(document: Any) -> list[float]:
    """Return ``document["data"][0]["embedding"]`` as a list of floats."""

    try:
        values = document["data"][0]["embedding"]
    except (KeyError, IndexError, TypeError) as exc:
        raise ParseError("Invalid embedding JSON structure: missing embedding array") from exc
    if not isinstance(values, list):
        raise ParseError("Invalid embedding JSON structure: missing embedding array")
    try:
        return [float(value) for value in values]
    except (TypeError, ValueError) as exc:
        raise ParseError("Invalid embedding JSON structure: non-numeric values") from exc


def parse_rerank_lines(text: str) -> list[float]:
    """Collect ``rerank score N: X`` values from plain-text output, in order."""

    scores: list[float] = []
    for line in text.splitlines():
        match = RERANK_SCORE_RE.search(line)
        if match:
            scores.append(float(match.group(1)))
    return scores


def parse_scores(stdout: str) -> list[float]:
    """Parse embedding/rerank output, trying JSON first and text lines second."""

    trimmed = stdout.strip()
    if not trimmed:
        raise ParseError("Embedding output empty.")
    try:
        document = json.loads(trimmed)
    except json.JSONDecodeError:
        logger.debug("Output is not JSON, falling back to rerank score lines")
    else:
        return extract_embedding(document)

    scores = parse_rerank_lines(trimmed)
    if not scores:
        raise ParseError("Could not parse embedding or reranking output.", output=trimmed)
    return scores


def collapse_scores(scores: Sequence[float]) -> float | list[float]:
    """Return the lone score as a float, or the whole list otherwise."""

    if len(scores) == 1:
        return scores[0]
    return list(scores)


__all__ = [
    "RERANK_SCORE_RE",
    "collapse_scores",
    "extract_embedding",
    "parse_rerank_lines",
    "parse_scores",
]

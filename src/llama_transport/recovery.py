"""Recover generated text from the full stdout of a ``llama-cli`` run."""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable

SUFFIX_MATCH_LENGTH = 30
COMMAND_LIST_MARKER = "/read               add a text file"
ARTIFACTS: tuple[str, ...] = (
    "Exiting...",
    "Loading model...",
    "available commands:",
)
PERFORMANCE_STATS_RE = re.compile(r"\[ Prompt: .* \| Generation: .* \]")

_BUILD_TOKEN_RE = re.compile(r"build\s*:")
_MODEL_TOKEN_RE = re.compile(r"model\s*:")

LinePredicate = Callable[[str], bool]

# Applied when no prompt boundary was found at all.
ECHO_LINE_FILTERS: tuple[tuple[str, LinePredicate], ...] = (
    ("blank", lambda line: not line.strip()),
    ("prompt_marker", lambda line: line.startswith(">") or line.startswith(" >")),
    ("truncated", lambda line: "(truncated)" in line),
    (
        "banner_signature",
        lambda line: bool(_BUILD_TOKEN_RE.search(line) and _MODEL_TOKEN_RE.search(line)),
    ),
)

# Applied after artifact removal whenever the exact prompt was not found.
BANNER_LINE_FILTERS: tuple[tuple[str, LinePredicate], ...] = (
    ("build_commit", lambda line: "build" in line and "commit" in line),
    ("model_size", lambda line: "model" in line and "size" in line),
    ("commands_header", lambda line: "available commands:" in line),
)


def find_prompt_boundary(output: str, prompt: str) -> tuple[int | None, bool]:
    """Return ``(offset, exact)`` where the generated text starts in *output*.

    The offset points just past the last echo of *prompt*; failing that, past
    the last echo of its trailing characters. ``None`` means no echo was found.
    """

    if prompt:
        position = output.rfind(prompt)
        if position != -1:
            return position + len(prompt), True
    if len(prompt) > SUFFIX_MATCH_LENGTH:
        suffix = prompt[-SUFFIX_MATCH_LENGTH:]
        position = output.rfind(suffix)
        if position != -1:
            return position + len(suffix), False
    return None, False


def _drop_lines(text: str, filters: Iterable[tuple[str, LinePredicate]]) -> str:
    predicates = [predicate for _name, predicate in filters]
    kept = [line for line in text.split("\n") if not any(check(line) for check in predicates)]
    return "\n".join(kept)


def strip_artifacts(text: str) -> str:
    """Remove fixed CLI notices and the trailing performance statistics."""

    for artifact in ARTIFACTS:
        text = text.replace(artifact, "")
    return PERFORMANCE_STATS_RE.sub("", text)


def recover_generated_text(stdout: str, prompt: str) -> str:
    """Return only the text the model generated for *prompt*."""

    trimmed = stdout.strip()
    offset, exact = find_prompt_boundary(trimmed, prompt)
    if offset is not None:
        trimmed = trimmed[offset:]
    else:
        marker = trimmed.find(COMMAND_LIST_MARKER)
        if marker != -1:
            trimmed = trimmed[marker + len(COMMAND_LIST_MARKER) :]
        trimmed = _drop_lines(trimmed, ECHO_LINE_FILTERS)

    trimmed = strip_artifacts(trimmed)

    if not exact:
        trimmed = _drop_lines(trimmed, BANNER_LINE_FILTERS)

    return trimmed.strip()


__all__ = [
    "ARTIFACTS",
    "BANNER_LINE_FILTERS",
    "COMMAND_LIST_MARKER",
    "ECHO_LINE_FILTERS",
    "PERFORMANCE_STATS_RE",
    "SUFFIX_MATCH_LENGTH",
    "find_prompt_boundary",
    "recover_generated_text",
    "strip_artifacts",
]

"""Incremental filters that strip CLI chrome from streamed ``llama-cli`` output.

Chunks may end anywhere, so each filter keeps the trailing partial line in
its state and only classifies complete lines. ``flush()`` classifies whatever
is left once the stream has ended. Feeding the same stdout in any chunking
therefore yields the same total output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .types import FilterPhase, StreamFilterMode

# Ordered (name, pattern) pairs; a line matching any of them is CLI chrome.
BANNER_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("loading_notice", re.compile(r"^Loading model\.\.\.")),
    ("build_header", re.compile(r"^build\s*:")),
    ("model_header", re.compile(r"^model\s*:")),
    ("modalities_header", re.compile(r"^modalities\s*:")),
    ("commands_header", re.compile(r"^available commands:")),
    ("exit_command", re.compile(r"^\s*/exit\b")),
    ("regen_command", re.compile(r"^\s*/regen\b")),
    ("clear_command", re.compile(r"^\s*/clear\b")),
    ("read_command", re.compile(r"^\s*/read\b")),
    ("exiting_notice", re.compile(r"^Exiting\.\.\.")),
    ("performance_stats", re.compile(r"^\[ Prompt:")),
    ("block_glyphs", re.compile("[\u2580-\u259f]")),
)


def banner_pattern_name(line: str) -> str | None:
    """Return the name of the first banner pattern matching *line*, if any."""

    text = line.rstrip("\r")
    for name, pattern in BANNER_PATTERNS:
        if pattern.search(text):
            return name
    return None


def is_banner_line(line: str) -> bool:
    return banner_pattern_name(line) is not None


@dataclass
class StreamFilterState:
    """Mutable state carried between chunks of one streaming call."""

    phase: FilterPhase = FilterPhase.BANNER
    carry: str = ""
    prompt_seen: bool = False
    content_found: bool = False

    def reset(self) -> None:
        self.phase = FilterPhase.BANNER
        self.carry = ""
        self.prompt_seen = False
        self.content_found = False


class StreamFilter:
    """Line-buffering base class; subclasses decide which lines to keep."""

    mode: StreamFilterMode

    def __init__(self, prompt: str) -> None:
        self.prompt = prompt
        self.state = StreamFilterState()

    def reset(self) -> None:
        self.state.reset()

    def feed(self, chunk: str) -> str:
        """Consume *chunk* and return the text that is safe to surface now."""

        lines = (self.state.carry + chunk).split("\n")
        self.state.carry = lines.pop()
        return "".join(line + "\n" for line in lines if self._accept(line))

    def flush(self) -> str:
        """Classify the unterminated final line once the stream has ended."""

        tail, self.state.carry = self.state.carry, ""
        if tail and self._accept(tail):
            return tail
        return ""

    def is_prompt_line(self, line: str) -> bool:
        """True for the echoed prompt, with or without the ``>`` CLI marker."""

        target = self.prompt.strip()
        if not target:
            return False
        text = line.strip()
        if text == target:
            return True
        return text.startswith(">") and text[1:].strip() == target

    def _accept(self, line: str) -> bool:
        raise NotImplementedError


class ConservativeStreamFilter(StreamFilter):
    """Drop only lines that are certainly CLI chrome.

    Until the prompt echo is seen every blank line is dropped, so paragraph
    breaks are lost when the binary never echoes the prompt. After the echo,
    blank lines are dropped until the first non-blank line and kept from then on.
    """

    mode = StreamFilterMode.CONSERVATIVE

    def _accept(self, line: str) -> bool:
        if is_banner_line(line):
            return False
        state = self.state
        blank = not line.strip()
        if not state.prompt_seen:
            if blank:
                return False
            if self.is_prompt_line(line):
                state.prompt_seen = True
                state.phase = FilterPhase.PROMPT
                return False
        elif not state.content_found and blank:
            return False
        if not blank:
            state.content_found = True
            state.phase = FilterPhase.CONTENT
        return True


class StateMachineStreamFilter(StreamFilter):
    """Explicit banner -> prompt -> content state machine."""

    mode = StreamFilterMode.STATE_MACHINE

    def _accept(self, line: str) -> bool:
        state = self.state
        blank = not line.strip()
        if state.phase is FilterPhase.BANNER:
            if blank or is_banner_line(line):
                return False
            state.phase = FilterPhase.PROMPT
        if state.phase is FilterPhase.PROMPT:
            if blank:
                return False
            # Anything other than the prompt means the transition was missed.
            state.phase = FilterPhase.CONTENT
            if self.is_prompt_line(line):
                state.prompt_seen = True
                return False
        if not blank:
            state.content_found = True
        return True


_FILTERS: dict[StreamFilterMode, type[StreamFilter]] = {
    StreamFilterMode.CONSERVATIVE: ConservativeStreamFilter,
    StreamFilterMode.STATE_MACHINE: StateMachineStreamFilter,
}


def create_stream_filter(mode: StreamFilterMode | str, prompt: str) -> StreamFilter:
    """Return a fresh filter of the requested strategy for *prompt*."""

    return _FILTERS[StreamFilterMode(mode)](prompt)


__all__ = [
    "BANNER_PATTERNS",
    "ConservativeStreamFilter",
    "StateMachineStreamFilter",
    "StreamFilter",
    "StreamFilterState",
    "banner_pattern_name",
    "create_stream_filter",
    "is_banner_line",
]

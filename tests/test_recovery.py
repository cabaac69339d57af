from __future__ import annotations

import pytest

from llama_transport.recovery import (
    BANNER_LINE_FILTERS,
    COMMAND_LIST_MARKER,
    ECHO_LINE_FILTERS,
    find_prompt_boundary,
    recover_generated_text,
    strip_artifacts,
)

CLI_STDOUT = (
    "Loading model...\n"
    "\n"
    "build      : b6100-abc1234\n"
    "model      : qwen3-0.6b.gguf\n"
    "modalities : text\n"
    "\n"
    "available commands:\n"
    "  /exit or Ctrl+C     stop or exit\n"
    "  /regen              regenerate the last response\n"
    "  /clear              clear the chat history\n"
    f"  {COMMAND_LIST_MARKER}\n"
    "\n"
    "> Why is the sky blue?\n"
    "\n"
    "Rayleigh scattering.\n"
    "\n"
    "Shorter wavelengths scatter more.\n"
    "\n"
    "[ Prompt: 55.2 t/s | Generation: 21.7 t/s ]\n"
    "\n"
    "Exiting...\n"
)


def test_recovers_answer_after_echoed_prompt() -> None:
    text = recover_generated_text(CLI_STDOUT, "Why is the sky blue?")
    assert text == "Rayleigh scattering.\n\nShorter wavelengths scatter more."


def test_uses_last_occurrence_of_prompt() -> None:
    stdout = "Say hi\n> Say hi\nhello there"
    assert recover_generated_text(stdout, "Say hi") == "hello there"


def test_falls_back_to_prompt_suffix() -> None:
    prompt = "Please summarize the following paragraph about rivers carefully."
    stdout = f"> ...{prompt[-30:]}\n\nRivers flow downhill.\nmodel size = 0.6B\n"

    assert recover_generated_text(stdout, prompt) == "Rivers flow downhill."


def test_falls_back_to_command_list_marker() -> None:
    stdout = (
        "available commands:\n"
        f"  {COMMAND_LIST_MARKER}\n"
        "\n"
        "> something the CLI rewrote\n"
        "build: b1 model: m.gguf\n"
        "The answer.\n"
        "(truncated)\n"
    )

    assert recover_generated_text(stdout, "unrelated prompt") == "The answer."


def test_banner_only_output_recovers_empty_string() -> None:
    stdout = (
        "Loading model...\n"
        "\n"
        "build: b1 commit abc\n"
        "model size: 1B\n"
        "available commands:\n"
    )
    assert recover_generated_text(stdout, "never echoed") == ""


def test_empty_output_recovers_empty_string() -> None:
    assert recover_generated_text("", "prompt") == ""


def test_exact_match_keeps_lines_that_look_like_banner() -> None:
    stdout = "> Describe the file\nThe model file has a size of 4GB.\n"
    assert recover_generated_text(stdout, "Describe the file") == (
        "The model file has a size of 4GB."
    )


def test_find_prompt_boundary() -> None:
    assert find_prompt_boundary("abc PROMPT xyz", "PROMPT") == (10, True)
    assert find_prompt_boundary("abc xyz", "PROMPT") == (None, False)
    assert find_prompt_boundary("abc", "") == (None, False)


def test_strip_artifacts_removes_notices_and_stats() -> None:
    text = "Hi\n[ Prompt: 1.0 t/s | Generation: 2.0 t/s ]\nExiting..."
    assert strip_artifacts(text) == "Hi\n\n"


@pytest.mark.parametrize(
    ("name", "line"),
    [
        ("blank", "   "),
        ("prompt_marker", "> echoed prompt"),
        ("truncated", "long prompt ... (truncated)"),
        ("banner_signature", "build: b6100 model: qwen.gguf"),
    ],
)
def test_echo_line_filters(name: str, line: str) -> None:
    predicate = dict(ECHO_LINE_FILTERS)[name]
    assert predicate(line)
    assert not predicate("Plain generated sentence.")


@pytest.mark.parametrize(
    ("name", "line"),
    [
        ("build_commit", "build = 6100 (commit abc1234)"),
        ("model_size", "model size = 0.6 GiB"),
        ("commands_header", "available commands:"),
    ],
)
def test_banner_line_filters(name: str, line: str) -> None:
    predicate = dict(BANNER_LINE_FILTERS)[name]
    assert predicate(line)
    assert not predicate("Plain generated sentence.")

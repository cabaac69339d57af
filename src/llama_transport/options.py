"""Option schemas, validation and argv construction for the llama.cpp binaries."""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .errors import ValidationError
from .types import PoolingMode

INT = "int"
NUMBER = "number"
STRING = "string"
STRING_LIST = "string_list"


@dataclass(frozen=True)
class OptionSpec:
    """Declared type, range and command-line flag for one option."""

    name: str
    kind: str
    flag: str | None = None
    minimum: float | None = None
    maximum: float | None = None
    exclusive_minimum: bool = False
    requirement: str = ""

    def validate(self, value: Any) -> Any:
        """Return the normalized value or raise :class:`ValidationError`."""

        if self.kind == INT:
            if isinstance(value, bool) or not isinstance(value, int):
                raise self._error()
            self._check_range(value)
            return int(value)
        if self.kind == NUMBER:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise self._error()
            if not math.isfinite(value):
                raise self._error()
            self._check_range(value)
            return value
        if self.kind == STRING:
            if not isinstance(value, str):
                raise self._error()
            return value
        if self.kind == STRING_LIST:
            if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
                raise self._error()
            for index, item in enumerate(value):
                if not isinstance(item, str):
                    raise ValidationError(
                        f"{self.name}[{index}] must be a string", option=self.name
                    )
            return list(value)
        raise ValueError(f"Unsupported option kind: {self.kind!r}")

    def _check_range(self, value: float) -> None:
        if self.minimum is not None:
            if self.exclusive_minimum and value <= self.minimum:
                raise self._error()
            if not self.exclusive_minimum and value < self.minimum:
                raise self._error()
        if self.maximum is not None and value > self.maximum:
            raise self._error()

    def _error(self) -> ValidationError:
        return ValidationError(f"{self.name} must be {self.requirement}", option=self.name)


def _positive_int(name: str, flag: str | None) -> OptionSpec:
    return OptionSpec(name, INT, flag, minimum=1, requirement="a positive integer")


def _non_negative_int(name: str, flag: str | None) -> OptionSpec:
    return OptionSpec(name, INT, flag, minimum=0, requirement="a non-negative integer")


_TIMEOUT = OptionSpec(
    "timeout", NUMBER, None, minimum=0, exclusive_minimum=True, requirement="a positive number"
)

# Ordering determines the order of flags on the command line.
GENERATION_SCHEMA: dict[str, OptionSpec] = {
    spec.name: spec
    for spec in (
        _positive_int("max_tokens", "-n"),
        OptionSpec(
            "temperature", NUMBER, "--temp", minimum=0, requirement="a non-negative number"
        ),
        OptionSpec(
            "top_p", NUMBER, "--top-p", minimum=0, maximum=1, requirement="between 0 and 1"
        ),
        OptionSpec(
            "repeat_penalty",
            NUMBER,
            "--repeat-penalty",
            minimum=0,
            requirement="a non-negative number",
        ),
        _positive_int("ctx_size", "-c"),
        _positive_int("threads", "--threads"),
        _non_negative_int("seed", "--seed"),
        _positive_int("batch_size", "--batch-size"),
        _non_negative_int("n_gpu_layers", "--n-gpu-layers"),
        _non_negative_int("keep", "--keep"),
        _positive_int("top_k", "--top-k"),
        OptionSpec(
            "reasoning_budget",
            INT,
            "--reasoning-budget",
            minimum=-1,
            requirement="an integer >= -1 (-1 for unlimited, 0 to disable)",
        ),
        OptionSpec(
            "reasoning_format",
            STRING,
            "--reasoning-format",
            requirement="a string (e.g., 'deepseek')",
        ),
        OptionSpec("grammar", STRING, "--grammar", requirement="a string path"),
        OptionSpec("json_schema", STRING, "-j", requirement="a string"),
        OptionSpec("stop", STRING_LIST, "-r", requirement="a list of strings"),
        _TIMEOUT,
    )
}

EMBEDDING_SCHEMA: dict[str, OptionSpec] = {
    spec.name: spec
    for spec in (
        _TIMEOUT,
        _positive_int("threads", "--threads"),
        _positive_int("batch_size", "--batch-size"),
        _non_negative_int("n_gpu_layers", "--n-gpu-layers"),
        _positive_int("ctx_size", "-c"),
        OptionSpec("cls_separator", STRING, None, requirement="a string"),
    )
}

DEFAULT_STOP_SEQUENCES: tuple[str, ...] = (
    "<|im_end|>",
    "<|endoftext|>",
    "User:",
    "\nUser:",
    "\n> ",
)

_FIXED_GENERATION_FLAGS: tuple[str, ...] = (
    "--no-display-prompt",
    "--simple-io",
    "--single-turn",
    "--color",
    "off",
)


def validate_options(
    options: Mapping[str, Any] | None,
    schema: Mapping[str, OptionSpec],
    *,
    mode: str = "generation",
) -> dict[str, Any]:
    """Check *options* against *schema* and return the normalized mapping.

    Keys whose value is ``None`` count as absent and are dropped.
    """

    if not options:
        return {}
    for key in options:
        if key not in schema:
            suffix = "" if mode == "generation" else f" for {mode}"
            raise ValidationError(
                f"Unknown option '{key}'{suffix}. Valid options: {', '.join(schema)}",
                option=str(key),
            )
    normalized: dict[str, Any] = {}
    for key, value in options.items():
        if value is None:
            continue
        normalized[key] = schema[key].validate(value)
    return normalized


def _mapped_flags(options: Mapping[str, Any], schema: Mapping[str, OptionSpec]) -> list[str]:
    args: list[str] = []
    for name, spec in schema.items():
        if spec.flag is None or spec.kind == STRING_LIST or name not in options:
            continue
        args.extend([spec.flag, str(options[name])])
    return args


def build_generation_args(
    binary: str,
    model_path: str,
    prompt: str,
    options: Mapping[str, Any],
) -> list[str]:
    """Return the argv for a single-turn generation run of ``llama-cli``."""

    args = [binary, "-m", model_path, "-p", prompt, "--log-disable"]
    args.extend(_mapped_flags(options, GENERATION_SCHEMA))
    args.extend(_FIXED_GENERATION_FLAGS)
    stops = options.get("stop")
    for stop in stops if stops is not None else DEFAULT_STOP_SEQUENCES:
        args.extend(["-r", stop])
    return args


def build_embedding_args(
    binary: str,
    model_path: str,
    prompt: str,
    options: Mapping[str, Any],
    *,
    pooling: PoolingMode,
) -> list[str]:
    """Return the argv for an embedding (``last``) or rerank (``rank``) run."""

    args = [binary, "-m", model_path, "-p", prompt, "--pooling", pooling.value]
    if pooling is PoolingMode.LAST:
        args.extend(["--embd-normalize", "2"])
    args.extend(["--embd-output-format", "json"])
    args.extend(_mapped_flags(options, EMBEDDING_SCHEMA))
    return args


__all__ = [
    "OptionSpec",
    "GENERATION_SCHEMA",
    "EMBEDDING_SCHEMA",
    "DEFAULT_STOP_SEQUENCES",
    "validate_options",
    "build_generation_args",
    "build_embedding_args",
]

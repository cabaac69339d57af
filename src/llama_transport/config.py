"""Configuration models and loaders for the llama.cpp transport."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from .types import StreamFilterMode

PROJECT_ROOT = Path(__file__).resolve().parents[2]
DEFAULT_CONFIG_PATH = PROJECT_ROOT / "configs" / "default.yaml"


class TransportConfig(BaseModel):
    """Where the binaries live and how their processes are supervised.

    Paths are resolved relative to the config file's parent directory.
    For configs in `configs/`, use `../models/...` to reach the repo root.
    """

    binary_path: Path = Field(default=Path("../bin/llama-cli"))
    model_path: Path = Field(default=Path("../models/model.gguf"))
    # Sibling of binary_path preferred for embedding and reranking when executable
    embedding_binary_name: str = Field(default="llama-embedding")
    poll_interval: float = Field(default=0.1, gt=0.0)
    default_timeout: float = Field(default=60.0, gt=0.0)
    stream_timeout: float = Field(default=120.0, gt=0.0)
    # Accept exit code -1 when stdout has output and stderr is empty
    tolerate_ambiguous_exit: bool = Field(default=True)
    stream_filter: StreamFilterMode = Field(default=StreamFilterMode.CONSERVATIVE)

    @field_validator("binary_path", "model_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> Path:
        if isinstance(value, Path):
            return value
        return Path(str(value)).expanduser()

    @field_validator("stream_filter", mode="before")
    @classmethod
    def _validate_stream_filter(cls, value: Any) -> StreamFilterMode:
        if isinstance(value, StreamFilterMode):
            return value
        value_str = str(value).strip().lower()
        try:
            return StreamFilterMode(value_str)
        except ValueError:
            raise ValueError(
                f"stream_filter must be 'conservative' or 'state_machine', got {value!r}"
            ) from None

    def with_base(self, base_dir: Path) -> TransportConfig:
        """Return a new config with absolute paths resolved against *base_dir*."""
        return self.model_copy(
            update={
                "binary_path": self._resolve_path(self.binary_path, base_dir),
                "model_path": self._resolve_path(self.model_path, base_dir),
            }
        )

    @staticmethod
    def _resolve_path(path: Path, base_dir: Path) -> Path:
        return path if path.is_absolute() else (base_dir / path).resolve()


class GenerationDefaults(BaseModel):
    """Option values merged under caller-supplied generation options."""

    max_tokens: int = Field(default=128, ge=1)
    temperature: float = Field(default=0.8, ge=0.0)
    top_p: float = Field(default=0.9, ge=0.0, le=1.0)
    repeat_penalty: float = Field(default=1.1, ge=0.0)
    ctx_size: int = Field(default=512, ge=1)
    timeout: int = Field(default=60, ge=1)

    def as_options(self) -> dict[str, Any]:
        return self.model_dump()


class ProjectConfig(BaseModel):
    """Top-level configuration container."""

    transport: TransportConfig = Field(default_factory=TransportConfig)
    generation: GenerationDefaults = Field(default_factory=GenerationDefaults)

    def with_base(self, base_dir: Path) -> ProjectConfig:
        """Return a copy with filesystem paths resolved against *base_dir*."""
        return self.model_copy(update={"transport": self.transport.with_base(base_dir)})


def _load_raw_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise TypeError(f"Expected config to deserialize into a mapping, got {type(data)!r}")
    return {str(key): value for key, value in data.items()}


def load_config(path: Path | str | None = None) -> ProjectConfig:
    """Load a project configuration from *path* (defaults to configs/default.yaml)."""
    config_path = Path(path).resolve() if path else DEFAULT_CONFIG_PATH
    raw_config = _load_raw_config(config_path)
    config = ProjectConfig.model_validate(raw_config)
    return config.with_base(config_path.parent)


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "GenerationDefaults",
    "ProjectConfig",
    "TransportConfig",
    "load_config",
]

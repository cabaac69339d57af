"""Generation, streaming, embedding and reranking over the llama.cpp CLI binaries."""

from __future__ import annotations

import codecs
import logging
import os
from collections.abc import Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any

from .config import TransportConfig
from .errors import ProcessError, TransportError
from .options import (
    EMBEDDING_SCHEMA,
    GENERATION_SCHEMA,
    build_embedding_args,
    build_generation_args,
    validate_options,
)
from .parsing import collapse_scores, parse_scores
from .process import (
    DEFAULT_POLL_INTERVAL,
    CapturedOutput,
    ProcessSupervisor,
    check_exit_status,
)
from .recovery import recover_generated_text
from .streaming import StreamFilter, create_stream_filter
from .types import PoolingMode, StreamFilterMode

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
DEFAULT_STREAM_TIMEOUT = 120.0
DEFAULT_RERANK_SEPARATOR = "\t"


class CliTransport:
    """Drive ``llama-cli`` / ``llama-embedding`` as one subprocess at a time."""

    def __init__(
        self,
        binary_path: Path | str,
        model_path: Path | str,
        *,
        embedding_binary_name: str = "llama-embedding",
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        default_timeout: float = DEFAULT_TIMEOUT,
        stream_timeout: float = DEFAULT_STREAM_TIMEOUT,
        tolerate_ambiguous_exit: bool = True,
        stream_filter: StreamFilterMode | str = StreamFilterMode.CONSERVATIVE,
    ) -> None:
        self.binary_path = Path(binary_path)
        self.model_path = Path(model_path)
        if not self.binary_path.exists():
            raise TransportError(f"Llama binary not found at: {self.binary_path}")
        if not os.access(self.binary_path, os.X_OK):
            raise TransportError(f"Llama binary is not executable: {self.binary_path}")
        if not self.model_path.exists():
            raise TransportError(f"Model file not found at: {self.model_path}")
        self.embedding_binary_name = embedding_binary_name
        self.default_timeout = default_timeout
        self.stream_timeout = stream_timeout
        self.stream_filter = StreamFilterMode(stream_filter)
        self.supervisor = ProcessSupervisor(
            poll_interval=poll_interval,
            tolerate_ambiguous_exit=tolerate_ambiguous_exit,
        )

    @classmethod
    def from_config(cls, config: TransportConfig) -> CliTransport:
        return cls(
            config.binary_path,
            config.model_path,
            embedding_binary_name=config.embedding_binary_name,
            poll_interval=config.poll_interval,
            default_timeout=config.default_timeout,
            stream_timeout=config.stream_timeout,
            tolerate_ambiguous_exit=config.tolerate_ambiguous_exit,
            stream_filter=config.stream_filter,
        )

    @property
    def is_running(self) -> bool:
        return self.supervisor.is_running

    def cancel(self) -> None:
        """Kill the running generation or embedding process."""
        self.supervisor.cancel()

    def generate(self, prompt: str, options: Mapping[str, Any] | None = None) -> str:
        """Run a single-turn generation and return only the generated text."""
        self.supervisor.ensure_idle()
        opts = validate_options(options, GENERATION_SCHEMA)
        logger.debug(
            "Starting text generation (prompt_length=%d, options=%s)", len(prompt), list(opts)
        )
        argv = build_generation_args(str(self.binary_path), str(self.model_path), prompt, opts)
        captured = self.supervisor.run(argv, self._timeout(opts, self.default_timeout))
        result = recover_generated_text(captured.stdout_text, prompt)
        logger.debug("Text generation completed (result_length=%d)", len(result))
        return result

    def generate_stream(
        self, prompt: str, options: Mapping[str, Any] | None = None
    ) -> Iterator[str]:
        """Return an iterator over filtered text fragments as the model produces them.

        Option validation and the concurrency check happen immediately; the
        process is spawned on the first ``next()``.
        """
        self.supervisor.ensure_idle()
        opts = validate_options(options, GENERATION_SCHEMA)
        logger.debug(
            "Starting streaming text generation (prompt_length=%d, options=%s)",
            len(prompt),
            list(opts),
        )
        argv = build_generation_args(str(self.binary_path), str(self.model_path), prompt, opts)
        logger.debug("Streaming command constructed: %s", argv)
        stream_filter = create_stream_filter(self.stream_filter, prompt)
        return self._stream(argv, prompt, stream_filter, self._timeout(opts, self.stream_timeout))

    def _stream(
        self, argv: list[str], prompt: str, stream_filter: StreamFilter, timeout: float
    ) -> Iterator[str]:
        captured = CapturedOutput()
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        for chunk in self.supervisor.stream(argv, timeout, captured, check=False):
            text = stream_filter.feed(decoder.decode(chunk))
            if text:
                yield text
        tail = stream_filter.feed(decoder.decode(b"", final=True)) + stream_filter.flush()
        if tail:
            yield tail
        check_exit_status(captured, tolerate_ambiguous=self.supervisor.tolerate_ambiguous_exit)
        # Already delivered chunk by chunk; computed for diagnostics only.
        result = recover_generated_text(captured.stdout_text, prompt)
        logger.debug("Streaming generation completed (result_length=%d)", len(result))

    def embed(self, text: str, options: Mapping[str, Any] | None = None) -> list[float]:
        """Return the embedding vector for *text*."""
        self.supervisor.ensure_idle()
        opts = validate_options(options, EMBEDDING_SCHEMA, mode="embedding")
        logger.debug(
            "Starting embedding generation (text_length=%d, options=%s)", len(text), list(opts)
        )
        argv = build_embedding_args(
            str(self.resolve_embedding_binary()),
            str(self.model_path),
            text,
            opts,
            pooling=PoolingMode.LAST,
        )
        stdout = self._run_structured(argv, opts, "embedding")
        embedding = parse_scores(stdout)
        logger.debug("Embedding generation completed (dimension=%d)", len(embedding))
        return embedding

    def rerank(
        self, query: str, document: str, options: Mapping[str, Any] | None = None
    ) -> float | list[float]:
        """Score how relevant *document* is to *query*.

        A single score is returned as a float, several as a list.
        """
        self.supervisor.ensure_idle()
        opts = validate_options(options, EMBEDDING_SCHEMA, mode="embedding")
        logger.debug(
            "Starting reranking (query_length=%d, document_length=%d, options=%s)",
            len(query),
            len(document),
            list(opts),
        )
        separator = opts.get("cls_separator", DEFAULT_RERANK_SEPARATOR)
        argv = build_embedding_args(
            str(self.resolve_embedding_binary()),
            str(self.model_path),
            f"{query}{separator}{document}",
            opts,
            pooling=PoolingMode.RANK,
        )
        logger.debug("Rerank command: %s", argv)
        stdout = self._run_structured(argv, opts, "reranking")
        logger.debug("Raw rerank stdout (first 500 chars): %s", stdout.strip()[:500])
        scores = parse_scores(stdout)
        logger.debug("Reranking completed (scores=%d)", len(scores))
        return collapse_scores(scores)

    def rerank_multiple(
        self,
        query: str,
        documents: Sequence[str],
        options: Mapping[str, Any] | None = None,
    ) -> list[float]:
        """Rerank each document in turn; scores keep the order of *documents*."""
        scores: list[float] = []
        for document in documents:
            score = self.rerank(query, document, options)
            if isinstance(score, list):
                score = score[0] if score else 0.0
            scores.append(score)
        return scores

    def resolve_embedding_binary(self) -> Path:
        """Prefer an executable embedding binary next to the configured one."""
        candidate = self.binary_path.parent / self.embedding_binary_name
        if candidate.is_file() and os.access(candidate, os.X_OK):
            return candidate
        return self.binary_path

    def _run_structured(self, argv: list[str], opts: Mapping[str, Any], label: str) -> str:
        timeout = self._timeout(opts, self.default_timeout)
        captured = self.supervisor.run(argv, timeout, check=False)
        code = captured.returncode
        if code != 0:
            if not captured.stdout.strip():
                stderr = captured.stderr_text
                raise ProcessError(
                    f"Llama {label} process exited with error (code {code}): {stderr}",
                    returncode=code,
                    stderr=stderr,
                )
            logger.warning(
                "Llama %s process exited with code %s; parsing its output anyway", label, code
            )
        return captured.stdout_text

    @staticmethod
    def _timeout(opts: Mapping[str, Any], default: float) -> float:
        return float(opts.get("timeout", default))


__all__ = ["CliTransport", "DEFAULT_RERANK_SEPARATOR", "DEFAULT_STREAM_TIMEOUT", "DEFAULT_TIMEOUT"]

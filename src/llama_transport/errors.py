"""Exception hierarchy raised by the llama.cpp subprocess transport."""

from __future__ import annotations


class TransportError(RuntimeError):
    """Base class for every failure surfaced by the transport layer."""


class ValidationError(TransportError):
    """Raised when an option name, type or range is rejected before spawning."""

    def __init__(self, message: str, *, option: str | None = None) -> None:
        super().__init__(message)
        self.option = option


class SpawnError(TransportError):
    """Raised when the inference binary cannot be started."""


class ProcessTimeoutError(TransportError):
    """Raised after a child exceeded its timeout and was killed."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Llama process timed out after {timeout:g} seconds.")
        self.timeout = timeout


class ProcessError(TransportError):
    """Raised when the child exits with a status the exit policy rejects."""

    def __init__(self, message: str, *, returncode: int | None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class ParseError(TransportError):
    """Raised when embedding or rerank output cannot be decoded."""

    def __init__(self, message: str, *, output: str = "") -> None:
        self.output_preview = output[:200]
        if output:
            message = f"{message} Output: {self.output_preview}"
        super().__init__(message)


class ConcurrencyError(TransportError):
    """Raised when an operation starts while another one is still running."""


class CancellationError(TransportError):
    """Raised when ``cancel()`` is called with no live process."""


class OperationCancelledError(TransportError):
    """Raised inside the interrupted operation after ``cancel()`` killed its process."""


__all__ = [
    "TransportError",
    "ValidationError",
    "SpawnError",
    "ProcessTimeoutError",
    "ProcessError",
    "ParseError",
    "ConcurrencyError",
    "CancellationError",
    "OperationCancelledError",
]

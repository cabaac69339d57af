"""Lifecycle supervision for a single llama.cpp child process.

The binary speaks no protocol, so the supervisor only spawns it with a
closed stdin, drains stdout/stderr through non-blocking reads on a fixed
poll interval, and enforces a wall-clock timeout. A supervisor owns at
most one live process; starting a second operation while one is running
fails immediately without spawning anything.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import IO

from .errors import (
    CancellationError,
    ConcurrencyError,
    OperationCancelledError,
    ProcessError,
    ProcessTimeoutError,
    SpawnError,
)

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1
# Exit status reported for a child whose real status was lost.
AMBIGUOUS_EXIT_CODE = -1
_READ_SIZE = 1 << 16


@dataclass
class CapturedOutput:
    """Bytes collected from one child process plus its final exit status."""

    stdout: bytes = b""
    stderr: bytes = b""
    returncode: int | None = None

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")


@dataclass
class ProcessHandle:
    """Live child process and the pipes the supervisor reads from."""

    process: subprocess.Popen[bytes]
    stdout: IO[bytes]
    stderr: IO[bytes]
    cancelled: bool = False
    released: bool = False

    @property
    def pid(self) -> int:
        return self.process.pid


def _read_available(stream: IO[bytes]) -> bytes:
    """Return whatever is buffered on a non-blocking pipe without waiting."""

    fd = stream.fileno()
    chunks: list[bytes] = []
    while True:
        try:
            data = os.read(fd, _READ_SIZE)
        except BlockingIOError:
            break
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)


def check_exit_status(captured: CapturedOutput, *, tolerate_ambiguous: bool = True) -> None:
    """Raise :class:`ProcessError` unless the exit status counts as success.

    A non-zero status is accepted only when it is the ambiguous sentinel, stderr
    is empty and stdout carries output, and *tolerate_ambiguous* is set.
    """

    code = captured.returncode
    if code == 0:
        return
    if (
        tolerate_ambiguous
        and code == AMBIGUOUS_EXIT_CODE
        and not captured.stderr
        and captured.stdout.strip()
    ):
        logger.warning("Accepting output from llama process with ambiguous exit code %s", code)
        return
    stderr = captured.stderr_text
    raise ProcessError(
        f"Llama process exited with error (code {code}): {stderr}",
        returncode=code,
        stderr=stderr,
    )


class ProcessSupervisor:
    """Run one child process at a time with polling, timeout and cancellation."""

    def __init__(
        self,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        tolerate_ambiguous_exit: bool = True,
    ) -> None:
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        self.poll_interval = poll_interval
        self.tolerate_ambiguous_exit = tolerate_ambiguous_exit
        self._lock = threading.Lock()
        self._handle: ProcessHandle | None = None

    @property
    def is_running(self) -> bool:
        return self._handle is not None

    def ensure_idle(self) -> None:
        """Fail fast when another operation already owns the child process."""

        if self._handle is not None:
            raise ConcurrencyError("Another operation is already in progress")

    def run(
        self, argv: Sequence[str], timeout: float, *, check: bool = True
    ) -> CapturedOutput:
        """Run *argv* to completion and return everything it wrote."""

        captured = CapturedOutput()
        for _chunk in self.stream(argv, timeout, captured, check=check):
            pass
        return captured

    def stream(
        self,
        argv: Sequence[str],
        timeout: float,
        captured: CapturedOutput | None = None,
        *,
        check: bool = True,
    ) -> Iterator[bytes]:
        """Run *argv*, yielding stdout bytes as they become available.

        Everything read is also appended to *captured*. Closing the iterator
        early kills and reaps the child.
        """

        if captured is None:
            captured = CapturedOutput()
        handle = self._spawn(argv)
        try:
            yield from self._poll(handle, timeout, captured)
        finally:
            self._release(handle)
        if check:
            check_exit_status(captured, tolerate_ambiguous=self.tolerate_ambiguous_exit)

    def cancel(self) -> None:
        """Kill the running child and release its resources."""

        with self._lock:
            handle = self._handle
            if handle is None or handle.released:
                raise CancellationError("No process is currently running")
            logger.info("Cancelling running llama process (pid %s)", handle.pid)
            handle.cancelled = True
        self._release(handle)

    def _spawn(self, argv: Sequence[str]) -> ProcessHandle:
        with self._lock:
            if self._handle is not None:
                raise ConcurrencyError("Another operation is already in progress")
            try:
                process = subprocess.Popen(
                    list(argv),
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                )
            except (OSError, ValueError) as exc:
                raise SpawnError(f"Failed to start llama process: {exc}") from exc
            assert process.stdin is not None
            assert process.stdout is not None
            assert process.stderr is not None
            process.stdin.close()
            os.set_blocking(process.stdout.fileno(), False)
            os.set_blocking(process.stderr.fileno(), False)
            handle = ProcessHandle(process=process, stdout=process.stdout, stderr=process.stderr)
            self._handle = handle
        logger.debug("Spawned llama process pid=%s argv0=%s", handle.pid, argv[0])
        return handle

    def _poll(
        self, handle: ProcessHandle, timeout: float, captured: CapturedOutput
    ) -> Iterator[bytes]:
        started = time.monotonic()
        while handle.process.poll() is None:
            chunk = self._collect(handle, captured)
            if chunk:
                yield chunk
            if time.monotonic() - started > timeout:
                logger.warning(
                    "Llama process pid=%s exceeded %ss timeout, killing", handle.pid, timeout
                )
                self._release(handle)
                raise ProcessTimeoutError(timeout)
            time.sleep(self.poll_interval)
        chunk = self._collect(handle, captured)
        if chunk:
            yield chunk
        captured.returncode = handle.process.returncode

    def _collect(self, handle: ProcessHandle, captured: CapturedOutput) -> bytes:
        with self._lock:
            if handle.cancelled:
                raise OperationCancelledError("Llama process was cancelled")
            out = _read_available(handle.stdout)
            err = _read_available(handle.stderr)
        captured.stdout += out
        captured.stderr += err
        return out

    def _release(self, handle: ProcessHandle) -> None:
        with self._lock:
            if not handle.released:
                handle.released = True
                if handle.process.poll() is None:
                    handle.process.kill()
                handle.stdout.close()
                handle.stderr.close()
                handle.process.wait()
            if self._handle is handle:
                self._handle = None


__all__ = [
    "AMBIGUOUS_EXIT_CODE",
    "DEFAULT_POLL_INTERVAL",
    "CapturedOutput",
    "ProcessHandle",
    "ProcessSupervisor",
    "check_exit_status",
]

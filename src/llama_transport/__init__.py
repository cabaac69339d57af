"""Drive llama.cpp command-line binaries and recover clean results from their output."""

from .clients import (
    EmbeddingClient,
    LlamaClient,
    RerankerClient,
    build_clients,
    build_transport,
)
from .config import GenerationDefaults, ProjectConfig, TransportConfig, load_config
from .errors import (
    CancellationError,
    ConcurrencyError,
    OperationCancelledError,
    ParseError,
    ProcessError,
    ProcessTimeoutError,
    SpawnError,
    TransportError,
    ValidationError,
)
from .process import CapturedOutput, ProcessSupervisor
from .recovery import recover_generated_text
from .streaming import ConservativeStreamFilter, StateMachineStreamFilter, create_stream_filter
from .transport import CliTransport
from .types import FilterPhase, PoolingMode, StreamFilterMode

__all__ = [
    "CancellationError",
    "CapturedOutput",
    "CliTransport",
    "ConcurrencyError",
    "ConservativeStreamFilter",
    "EmbeddingClient",
    "FilterPhase",
    "GenerationDefaults",
    "LlamaClient",
    "OperationCancelledError",
    "ParseError",
    "PoolingMode",
    "ProcessError",
    "ProcessSupervisor",
    "ProcessTimeoutError",
    "ProjectConfig",
    "RerankerClient",
    "SpawnError",
    "StateMachineStreamFilter",
    "StreamFilterMode",
    "TransportConfig",
    "TransportError",
    "ValidationError",
    "build_clients",
    "build_transport",
    "create_stream_filter",
    "load_config",
    "recover_generated_text",
    "__version__",
]

__version__ = "0.1.0"

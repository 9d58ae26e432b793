"""
Core logic package.

Provides the output parser, log framing and error taxonomy shared by the workers.
"""

from .bootstrap import StagedBootstrap, ensure_bootstrap_staged
from .exceptions import (
    BootstrapError,
    MessageParseError,
    ProcessExitError,
    ResultValidationError,
    SpawnError,
    TransportError,
    UnsupportedRuntimeError,
    WorkerError,
)
from .lambda_log import InvocationLog
from .stream_parser import END_SENTINEL, START_SENTINEL, StreamMessageParser

__all__ = [
    "StagedBootstrap",
    "ensure_bootstrap_staged",
    "BootstrapError",
    "MessageParseError",
    "ProcessExitError",
    "ResultValidationError",
    "SpawnError",
    "TransportError",
    "UnsupportedRuntimeError",
    "WorkerError",
    "InvocationLog",
    "END_SENTINEL",
    "START_SENTINEL",
    "StreamMessageParser",
]

"""
Services package.

Provides the invocation worker backends.
"""

from .container_engine import CliContainerEngine, ContainerEngine
from .container_worker import ContainerWorker
from .process_worker import ProcessWorker
from .worker import Worker

__all__ = [
    "CliContainerEngine",
    "ContainerEngine",
    "ContainerWorker",
    "ProcessWorker",
    "Worker",
]

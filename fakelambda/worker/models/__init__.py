"""
Data model definitions package.

Aggregates Pydantic models for use in other modules.
"""

from .container import ContainerInstance
from .protocol import EventMessage, ProtocolMessage, ResultMessage, parse_protocol_message
from .result import ResultEnvelope, ResultValidation, validate_result

__all__ = [
    "ContainerInstance",
    "EventMessage",
    "ProtocolMessage",
    "ResultMessage",
    "parse_protocol_message",
    "ResultEnvelope",
    "ResultValidation",
    "validate_result",
]

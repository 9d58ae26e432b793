"""
Host <-> bootstrap program messages.

The host writes one EventMessage to the child's stdin; the child embeds one
ResultMessage in its stdout. Both are discriminated by the "message" field.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, StrictStr, TypeAdapter, ValidationError

from ..core.exceptions import ResultValidationError


class EventMessage(BaseModel):
    """Host -> child: the event to hand to the handler."""

    message: Literal["event"] = "event"
    id: str
    eventObject: Any = None


class ResultMessage(BaseModel):
    """Child -> host: the handler's return value and peak memory in bytes."""

    message: Literal["result"] = "result"
    id: StrictStr
    result: Any = None
    memory: float = 0


ProtocolMessage = Annotated[Union[EventMessage, ResultMessage], Field(discriminator="message")]

_protocol_adapter = TypeAdapter(ProtocolMessage)


def parse_protocol_message(raw: Any) -> Union[EventMessage, ResultMessage]:
    """Decode a JSON object into its message type."""
    if not isinstance(raw, dict):
        raise ResultValidationError(f"bad data type from child process: {type(raw).__name__}", raw)
    try:
        return _protocol_adapter.validate_python(raw)
    except ValidationError as e:
        raise ResultValidationError(str(e), raw) from e

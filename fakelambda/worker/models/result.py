"""
Invocation result models.

ResultEnvelope is the API Gateway proxy response shape a handler returns.
"""

from typing import Any, Dict, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    ValidationError,
    field_validator,
)


class ResultEnvelope(BaseModel):
    """
    AWS API Gateway Proxy Integration response.

    Unknown keys are kept so the caller receives the handler's object untouched.
    """

    statusCode: Union[StrictInt, StrictFloat]
    headers: Dict[str, Any]
    multiValueHeaders: Optional[Dict[str, Any]] = None
    body: StrictStr
    isBase64Encoded: StrictBool

    model_config = ConfigDict(strict=True, extra="allow")

    @field_validator("statusCode", mode="before")
    @classmethod
    def _reject_bool_status(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("statusCode must be a number")
        return value


class ResultValidation(BaseModel):
    """Outcome of validate_result(): either an envelope or the reason it was rejected."""

    ok: bool
    envelope: Optional[ResultEnvelope] = None
    error: Optional[str] = None


def validate_result(value: Any) -> ResultValidation:
    """
    Check a handler result against the ResultEnvelope schema.

    Shape mismatches are reported in the returned value, never raised.
    """
    if not isinstance(value, dict):
        return ResultValidation(ok=False, error=f"expected an object, got {type(value).__name__}")
    try:
        envelope = ResultEnvelope.model_validate(value)
    except ValidationError as e:
        return ResultValidation(ok=False, error=str(e))
    return ResultValidation(ok=True, envelope=envelope)

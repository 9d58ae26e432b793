"""
RequestContext management.
Use ContextVar to share the invocation id across async execution.
"""

from contextvars import ContextVar, Token
from typing import Optional


# Context variable for the id of the invocation being served.
_request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current Request ID."""
    return _request_id_var.get()


def set_request_id(request_id: str) -> Token:
    """
    Bind a Request ID to the current context.

    Returns:
        Token usable with reset_request_id()
    """
    return _request_id_var.set(request_id)


def reset_request_id(token: Token) -> None:
    """Restore the Request ID that was active before set_request_id()."""
    _request_id_var.reset(token)

from typing import Any, Protocol


class Worker(Protocol):
    """
    What a dispatcher needs from a backend.

    A resolved request() becomes the HTTP response; a raised error becomes a 500.
    """

    async def request(self, request_id: str, event_object: Any) -> Any: ...

    async def close(self) -> None: ...

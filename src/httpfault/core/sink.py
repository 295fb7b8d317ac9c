from __future__ import annotations
from typing import Any, Awaitable, Callable, Protocol


class ResponseSink(Protocol):
    def set_status(self, status_code: int) -> None: ...

    async def write(self, data: bytes) -> None: ...


class ConnectionAborted(BaseException):
    """
    Raised to end one request without a response.
    Hosts catch it at the per-connection boundary and close the connection
    silently. It derives from BaseException so `except Exception` handlers in
    application and framework code let it through.
    """


# downstream(request, sink) -> None
Handler = Callable[[Any, ResponseSink], Awaitable[None]]

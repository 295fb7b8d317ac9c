from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence, Union

from httpfault.core.faults import Fault
from httpfault.core.handler import chain
from httpfault.core.sink import ConnectionAborted

Scope = dict[str, Any]
Message = dict[str, Any]
Receive = Callable[[], Awaitable[Message]]
Send = Callable[[Message], Awaitable[None]]
ASGIApp = Callable[[Scope, Receive, Send], Awaitable[None]]

FaultSource = Union[Sequence[Fault], Callable[[], Sequence[Fault]]]


@dataclass(frozen=True)
class AsgiRequest:
    scope: Scope
    receive: Receive


class AsgiSink:
    """
    ResponseSink over an ASGI `send`.
    Downstream messages pass straight through, except the final body message,
    which is held until flush() so that a delay after downstream delays the
    end of the response.
    """

    def __init__(self, send: Send):
        self._send = send
        self._held: Message | None = None
        self.status_code: int | None = None
        self.started = False
        self.finished = False

    def set_status(self, status_code: int) -> None:
        if self.status_code is None:
            self.status_code = status_code

    async def write(self, data: bytes) -> None:
        if not self.started:
            await self.send({
                "type": "http.response.start",
                "status": self.status_code or 200,
                "headers": [(b"content-type", b"text/plain; charset=utf-8")],
            })
        await self.send({"type": "http.response.body", "body": data, "more_body": True})

    async def send(self, message: Message) -> None:
        if message["type"] == "http.response.start":
            self.started = True
            self.status_code = message["status"]
        elif message["type"] == "http.response.body" and not message.get("more_body", False):
            self._held = message
            return
        await self._send(message)

    async def flush(self) -> None:
        if self.finished:
            return
        if self._held is not None:
            await self._send(self._held)
        elif self.started:
            await self._send({"type": "http.response.body", "body": b"", "more_body": False})
        elif self.status_code is not None:
            # status set but nothing written
            await self._send({"type": "http.response.start", "status": self.status_code, "headers": []})
            await self._send({"type": "http.response.body", "body": b"", "more_body": False})
        else:
            return
        self.finished = True


class FaultMiddleware:
    """
    ASGI middleware running a fault stack in front of `app`.

        app.add_middleware(FaultMiddleware, faults=[Delay(ratio=0.1, duration=0.2)])

    `faults` may be a callable returning the current stack, which lets the
    stack be swapped at runtime. ConnectionAborted is left to the ASGI server.
    """

    def __init__(self, app: ASGIApp, faults: FaultSource = ()):
        self.app = app
        self._faults = faults

    def current_faults(self) -> Sequence[Fault]:
        if callable(self._faults):
            return self._faults()
        return self._faults

    async def _downstream(self, request: AsgiRequest, sink: AsgiSink) -> None:
        await self.app(request.scope, request.receive, sink.send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        sink = AsgiSink(send)
        handler = chain(self._downstream, *self.current_faults())
        await handler(AsgiRequest(scope, receive), sink)
        await sink.flush()


class AbortLogFilter(logging.Filter):
    """Drops server error records whose exception is an injected abort."""

    def filter(self, record: logging.LogRecord) -> bool:
        exc = record.exc_info[1] if record.exc_info else None
        return not isinstance(exc, ConnectionAborted)


def install_abort_log_filter(logger_name: str = "uvicorn.error") -> AbortLogFilter:
    f = AbortLogFilter()
    logging.getLogger(logger_name).addFilter(f)
    return f

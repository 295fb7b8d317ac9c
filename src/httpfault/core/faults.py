from __future__ import annotations
import abc
import asyncio
from dataclasses import dataclass, field
from typing import Any, ClassVar, NoReturn, Union

from httpfault.core import decision
from httpfault.core.decision import DecisionEngine
from httpfault.core.sink import ConnectionAborted, Handler, ResponseSink
from httpfault.observability.logging import get_logger

log = get_logger(__name__)

# body used when an injected error has no status text
PSEUDO_STATUS_TEXT = "fault: pseudo status text is injected"


@dataclass(frozen=True, kw_only=True)
class _FaultBase(abc.ABC):
    # fraction of requests this layer fires on; out-of-range values saturate
    ratio: float
    engine: DecisionEngine | None = field(default=None, compare=False, repr=False)

    kind: ClassVar[str] = ""

    def triggered(self) -> bool:
        if self.engine is None:
            return decision.decide(self.ratio)
        return self.engine.decide(self.ratio)

    async def handle(self, request: Any, sink: ResponseSink, downstream: Handler) -> None:
        if not self.triggered():
            await downstream(request, sink)
            return

        log.debug("fault injected", kind=self.kind, ratio=self.ratio)
        await self.inject(request, sink, downstream)

    @abc.abstractmethod
    async def inject(self, request: Any, sink: ResponseSink, downstream: Handler) -> None:
        """Run the fault once it has been triggered."""


async def _respond(sink: ResponseSink, status_code: int, status_text: str) -> None:
    sink.set_status(status_code)
    await sink.write((status_text or PSEUDO_STATUS_TEXT).encode("utf-8"))


def _abort() -> NoReturn:
    raise ConnectionAborted()


@dataclass(frozen=True, kw_only=True)
class Delay(_FaultBase):
    """
    Adds latency around the downstream call.
    With afterward=False the request sleeps before reaching downstream (slow
    to start); with afterward=True downstream runs first and the response is
    held back (slow to complete), which exercises read timeouts rather than
    connect/first-byte timeouts.
    """
    duration: float = 0.0   # seconds
    afterward: bool = False

    kind: ClassVar[str] = "delay"

    async def inject(self, request, sink, downstream):
        if self.afterward:
            await downstream(request, sink)
            await asyncio.sleep(self.duration)
            return

        await asyncio.sleep(self.duration)
        await downstream(request, sink)


@dataclass(frozen=True, kw_only=True)
class Error(_FaultBase):
    """
    Responds with status_code and status_text without calling downstream.
    status_code is trusted; an invalid one is the host's problem.
    """
    status_code: int = 500
    status_text: str = ""

    kind: ClassVar[str] = "error"

    async def inject(self, request, sink, downstream):
        await _respond(sink, self.status_code, self.status_text)


@dataclass(frozen=True, kw_only=True)
class DelayWithError(_FaultBase):
    """Sleeps, then responds like Error. Downstream is never called."""
    duration: float = 0.0
    status_code: int = 500
    status_text: str = ""

    kind: ClassVar[str] = "delay_with_error"

    async def inject(self, request, sink, downstream):
        await asyncio.sleep(self.duration)
        await _respond(sink, self.status_code, self.status_text)


@dataclass(frozen=True, kw_only=True)
class Abort(_FaultBase):
    """Ends the request with no response at all, like a crash or a reset."""

    kind: ClassVar[str] = "abort"

    async def inject(self, request, sink, downstream):
        _abort()


@dataclass(frozen=True, kw_only=True)
class DelayWithAbort(_FaultBase):
    duration: float = 0.0

    kind: ClassVar[str] = "delay_with_abort"

    async def inject(self, request, sink, downstream):
        await asyncio.sleep(self.duration)
        _abort()


Fault = Union[Delay, Error, DelayWithError, Abort, DelayWithAbort]

from __future__ import annotations
import dataclasses
from typing import Any

from httpfault.core.faults import Fault
from httpfault.core.sink import Handler, ResponseSink


def wrap(fault: Fault, downstream: Handler, *, ratio: float | None = None) -> Handler:
    """
    Bind one fault layer to a downstream handler.
    The result has the same shape as downstream, so layers stack freely.
    `ratio` overrides the fault's own ratio for this pipeline only.
    """
    if ratio is not None:
        fault = dataclasses.replace(fault, ratio=ratio)

    async def handler(request: Any, sink: ResponseSink) -> None:
        await fault.handle(request, sink, downstream)

    return handler


def chain(downstream: Handler, *faults: Fault) -> Handler:
    """Stack faults around downstream; the first fault is the outermost layer."""
    handler = downstream
    for fault in reversed(faults):
        handler = wrap(fault, handler)
    return handler

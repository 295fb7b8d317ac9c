from __future__ import annotations
import httpx

from httpfault.transport.server import BufferedSink, HttpRequest
from httpfault.observability.logging import get_logger

log = get_logger(__name__)

# not forwarded in either direction
_HOP_BY_HOP = frozenset({
    "connection", "keep-alive", "proxy-authenticate", "proxy-authorization",
    "te", "trailer", "transfer-encoding", "upgrade", "host", "content-length",
})


class UpstreamProxy:
    """Downstream handler that forwards each request to a real upstream service."""

    def __init__(self, base_url: str, timeout_s: float = 5.0, *, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout_s)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __call__(self, request: HttpRequest, sink: BufferedSink) -> None:
        headers = [(k, v) for k, v in request.headers if k.lower() not in _HOP_BY_HOP]
        try:
            r = await self._client.request(
                request.method,
                request.target,
                headers=headers,
                content=request.body,
            )
        except httpx.TransportError as e:
            log.warning("upstream unreachable", target=request.target, error=str(e))
            sink.set_status(502)
            await sink.write(b"Bad Gateway")
            return

        sink.set_status(r.status_code)
        for k, v in r.headers.multi_items():
            if k.lower() not in _HOP_BY_HOP and k.lower() != "content-encoding":
                sink.add_header(k, v)
        await sink.write(r.content)

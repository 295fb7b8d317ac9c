from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from http import HTTPStatus

import h11

from httpfault.core.sink import ConnectionAborted, Handler
from httpfault.observability.logging import get_logger

log = get_logger(__name__)

_RECV_BUF = 65536
_TEXT_PLAIN = "text/plain; charset=utf-8"
_NO_BODY_STATUS = frozenset({204, 304})


@dataclass(frozen=True)
class HttpRequest:
    method: str
    target: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytes = b""


class BufferedSink:
    """
    Collects the response and releases it after the handler returns,
    the way a buffered response writer does.
    """

    def __init__(self):
        self.status_code: int | None = None
        self.headers: list[tuple[str, str]] = []
        self.body = bytearray()

    def set_status(self, status_code: int) -> None:
        # first status wins; later calls are ignored
        if self.status_code is None:
            self.status_code = status_code

    def add_header(self, name: str, value: str) -> None:
        self.headers.append((name.lower(), value))

    async def write(self, data: bytes) -> None:
        if self.status_code is None:
            self.status_code = 200
        self.body.extend(data)

    @property
    def written(self) -> bool:
        return self.status_code is not None or bool(self.body)


def _reason(status_code: int) -> bytes:
    try:
        return HTTPStatus(status_code).phrase.encode()
    except ValueError:
        return b""


class FaultServer:
    """
    HTTP/1.1 server running `handler` once per request, one task per connection.
    A handler that raises ConnectionAborted gets its connection closed with
    nothing written.
    """

    def __init__(self, handler: Handler, host: str = "127.0.0.1", port: int = 0):
        self._handler = handler
        self._host = host
        self._port = port
        self._server: asyncio.base_events.Server | None = None

    @property
    def port(self) -> int:
        if self._server is None:
            return self._port
        return self._server.sockets[0].getsockname()[1]

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self.port}"

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, host=self._host, port=self._port)
        log.info("fault server listening", host=self._host, port=self.port)

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        await self._server.serve_forever()

    async def close(self) -> None:
        s = self._server
        if s:
            s.close()
            await s.wait_closed()
            self._server = None

    async def __aenter__(self) -> FaultServer:
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        conn = h11.Connection(h11.SERVER)
        try:
            while True:
                request = await self._read_request(conn, reader)
                if request is None:
                    return

                sink = BufferedSink()
                try:
                    await self._handler(request, sink)
                except ConnectionAborted:
                    # injected abort: drop the connection, no response, no traceback
                    log.debug("connection aborted", method=request.method, target=request.target)
                    return
                except Exception:
                    log.exception("handler failed", method=request.method, target=request.target)
                    sink = BufferedSink()
                    sink.set_status(500)
                    await sink.write(HTTPStatus.INTERNAL_SERVER_ERROR.phrase.encode())

                await self._send_response(conn, writer, sink, head=request.method == "HEAD")

                if conn.our_state is h11.DONE and conn.their_state is h11.DONE:
                    conn.start_next_cycle()
                else:
                    return

        except h11.RemoteProtocolError as e:
            log.debug("bad request", error=str(e))
            if conn.our_state in (h11.IDLE, h11.SEND_RESPONSE):
                sink = BufferedSink()
                sink.set_status(e.error_status_hint)
                await sink.write(str(e).encode())
                try:
                    await self._send_response(conn, writer, sink)
                except (h11.LocalProtocolError, ConnectionError):
                    pass
        except h11.LocalProtocolError as e:
            # e.g. an injected status code that HTTP/1.1 cannot carry
            log.warning("cannot send response", error=str(e))
        except ConnectionError:
            # client disconnected early
            pass
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    async def _next_event(self, conn: h11.Connection, reader: asyncio.StreamReader):
        while True:
            event = conn.next_event()
            if event is h11.NEED_DATA:
                # b"" tells h11 the peer closed
                conn.receive_data(await reader.read(_RECV_BUF))
                continue
            return event

    async def _read_request(self, conn: h11.Connection, reader: asyncio.StreamReader) -> HttpRequest | None:
        event = await self._next_event(conn, reader)
        if not isinstance(event, h11.Request):
            return None

        body = bytearray()
        while True:
            part = await self._next_event(conn, reader)
            if isinstance(part, h11.Data):
                body.extend(part.data)
            elif isinstance(part, h11.EndOfMessage):
                break
            else:
                return None

        return HttpRequest(
            method=event.method.decode("ascii"),
            target=event.target.decode("ascii"),
            headers=[(k.decode("latin-1"), v.decode("latin-1")) for k, v in event.headers],
            body=bytes(body),
        )

    async def _send_response(self, conn: h11.Connection, writer: asyncio.StreamWriter, sink: BufferedSink, head: bool = False) -> None:
        status = sink.status_code or 200
        # 1xx, 204 and 304 carry no body and no content-length; the body is dropped
        no_body = status < 200 or status in _NO_BODY_STATUS
        headers = [(k, v) for k, v in sink.headers if k not in ("content-length", "transfer-encoding")]
        if not no_body:
            if not any(k == "content-type" for k, _ in headers) and sink.body:
                headers.append(("content-type", _TEXT_PLAIN))
            headers.append(("content-length", str(len(sink.body))))

        writer.write(conn.send(h11.Response(status_code=status, headers=headers, reason=_reason(status))))
        if sink.body and not head and not no_body:
            writer.write(conn.send(h11.Data(data=bytes(sink.body))))
        writer.write(conn.send(h11.EndOfMessage()))
        await writer.drain()

import asyncio
import time

import httpx
import pytest
from structlog.testing import capture_logs

from httpfault.core.faults import Abort, Delay, DelayWithAbort, Error
from httpfault.core.handler import chain, wrap
from httpfault.transport.server import FaultServer

RAW_GET = b"GET /abort HTTP/1.1\r\nHost: test\r\n\r\n"


async def _raw_request(port: int, payload: bytes = RAW_GET) -> bytes:
    reader, writer = await asyncio.open_connection("127.0.0.1", port)
    try:
        writer.write(payload)
        await writer.drain()
        try:
            return await reader.read()
        except ConnectionResetError:
            return b""
    finally:
        writer.close()


@pytest.mark.system
def test_passthrough_serves_downstream(recorder):
    async def scenario():
        async with FaultServer(chain(recorder, Error(ratio=0, status_code=500))) as server:
            async with httpx.AsyncClient(base_url=server.url) as client:
                return await client.get("/hello")

    r = asyncio.run(scenario())
    assert r.status_code == 200
    assert r.text == "ok"
    request = recorder.calls[0][0]
    assert (request.method, request.target) == ("GET", "/hello")


@pytest.mark.system
def test_injected_error_over_the_wire(recorder):
    async def scenario():
        async with FaultServer(chain(recorder, Error(ratio=1, status_code=503))) as server:
            async with httpx.AsyncClient(base_url=server.url) as client:
                return await client.get("/")

    r = asyncio.run(scenario())
    assert r.status_code == 503
    assert r.text == "fault: pseudo status text is injected"
    assert r.headers["content-type"].startswith("text/plain")
    assert recorder.count == 0


@pytest.mark.system
def test_abort_closes_without_response(recorder):
    async def scenario():
        async with FaultServer(chain(recorder, Abort(ratio=1))) as server:
            return await _raw_request(server.port)

    assert asyncio.run(scenario()) == b""
    assert recorder.count == 0


@pytest.mark.system
def test_abort_does_not_disturb_sibling_connections(make_recorder):
    downstream = make_recorder(b"fine")
    aborting = wrap(DelayWithAbort(ratio=1, duration=0.02), downstream)

    async def route(request, sink):
        if request.target == "/abort":
            await aborting(request, sink)
        else:
            await downstream(request, sink)

    async def scenario():
        async with FaultServer(route) as server:
            async with httpx.AsyncClient(base_url=server.url) as client:
                raw, ok = await asyncio.gather(_raw_request(server.port), client.get("/ok"))
                after = await client.get("/ok")
                return raw, ok, after

    raw, ok, after = asyncio.run(scenario())
    assert raw == b""
    assert (ok.status_code, ok.text) == (200, "fine")
    assert after.status_code == 200
    assert downstream.count == 2


@pytest.mark.system
def test_delay_afterward_delays_response(recorder):
    async def scenario():
        async with FaultServer(chain(recorder, Delay(ratio=1, duration=0.05, afterward=True))) as server:
            async with httpx.AsyncClient(base_url=server.url) as client:
                t0 = time.monotonic()
                r = await client.get("/")
                return r, t0, time.monotonic()

    r, t0, t1 = asyncio.run(scenario())
    assert r.status_code == 200
    assert t1 - t0 >= 0.045
    # downstream ran before the delay, the response only after it
    assert t1 - recorder.first_call_at >= 0.045


@pytest.mark.system
def test_keep_alive_serves_several_requests(recorder):
    async def scenario():
        async with FaultServer(recorder) as server:
            async with httpx.AsyncClient(base_url=server.url) as client:
                return [await client.post("/items", content=b"x" * n) for n in (1, 10, 100)]

    responses = asyncio.run(scenario())
    assert [r.status_code for r in responses] == [200, 200, 200]
    assert [len(c[0].body) for c in recorder.calls] == [1, 10, 100]


@pytest.mark.system
def test_crashing_handler_answers_500():
    async def broken(request, sink):
        raise RuntimeError("bug in the real handler")

    async def scenario():
        async with FaultServer(broken) as server:
            async with httpx.AsyncClient(base_url=server.url) as client:
                return await client.get("/")

    r = asyncio.run(scenario())
    assert r.status_code == 500


@pytest.mark.system
def test_garbage_request_gets_400():
    async def scenario():
        async def never(request, sink):
            raise AssertionError("not a request")

        async with FaultServer(never) as server:
            return await _raw_request(server.port, b"NOT HTTP AT ALL\r\n\r\n")

    raw = asyncio.run(scenario())
    assert raw.startswith(b"HTTP/1.1 400")


@pytest.mark.system
@pytest.mark.parametrize("status", [204, 304])
def test_no_body_status_keeps_connection_usable(recorder, status):
    pipelined = (
        b"GET /first HTTP/1.1\r\nHost: test\r\n\r\n"
        b"GET /second HTTP/1.1\r\nHost: test\r\nConnection: close\r\n\r\n"
    )

    async def scenario():
        async with FaultServer(chain(recorder, Error(ratio=1, status_code=status, status_text="fake"))) as server:
            return await _raw_request(server.port, pipelined)

    raw = asyncio.run(scenario())
    assert raw.count(b"HTTP/1.1 %d " % status) == 2
    assert b"content-length" not in raw.lower()
    assert b"fake" not in raw
    assert recorder.count == 0


@pytest.mark.system
def test_head_response_has_no_body(recorder):
    async def scenario():
        async with FaultServer(recorder) as server:
            async with httpx.AsyncClient(base_url=server.url) as client:
                head = await client.head("/")
                get = await client.get("/")
                return head, get

    head, get = asyncio.run(scenario())
    assert (head.status_code, head.content) == (200, b"")
    assert (get.status_code, get.text) == (200, "ok")


@pytest.mark.system
def test_abort_is_logged_quietly(recorder):
    async def scenario():
        async with FaultServer(chain(recorder, Abort(ratio=1))) as server:
            return await _raw_request(server.port)

    with capture_logs() as logs:
        assert asyncio.run(scenario()) == b""

    aborted = [e for e in logs if e["event"] == "connection aborted"]
    assert len(aborted) == 1
    assert aborted[0]["log_level"] == "debug"
    assert aborted[0]["target"] == "/abort"
    assert not any(e["event"] == "handler failed" for e in logs)
    assert not any(e["log_level"] in ("warning", "error", "exception", "critical") for e in logs)
    assert not any("exc_info" in e for e in logs)


@pytest.mark.system
def test_crashing_handler_is_logged_with_traceback():
    async def broken(request, sink):
        raise RuntimeError("bug in the real handler")

    async def scenario():
        async with FaultServer(broken) as server:
            async with httpx.AsyncClient(base_url=server.url) as client:
                return await client.get("/")

    with capture_logs() as logs:
        assert asyncio.run(scenario()).status_code == 500

    failed = [e for e in logs if e["event"] == "handler failed"]
    assert len(failed) == 1
    assert failed[0]["log_level"] in ("error", "exception")
    assert failed[0]["exc_info"]

import time

import pytest
from starlette.testclient import TestClient

from httpfault.api.client import FaultControlClient
from httpfault.core.decision import DecisionEngine


class Recorder:
    """
    Downstream handler that remembers every call.
    Answers 200 with `body` unless told otherwise.
    """

    def __init__(self, body: bytes = b"ok"):
        self.body = body
        self.calls = []  # (request, sink, monotonic time)

    async def __call__(self, request, sink):
        self.calls.append((request, sink, time.monotonic()))
        sink.set_status(200)
        await sink.write(self.body)

    @property
    def count(self) -> int:
        return len(self.calls)

    @property
    def first_call_at(self) -> float:
        return self.calls[0][2]


@pytest.fixture
def engine():
    return DecisionEngine(seed=1234)


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def make_recorder():
    return Recorder


@pytest.fixture
def demo():
    """
    The demo FastAPI app with an empty fault stack.
    """
    from services.fault_demo.app import main

    main.STATE.clear()
    try:
        yield main
    finally:
        main.STATE.clear()


@pytest.fixture
def demo_http(demo):
    client = TestClient(demo.app)
    try:
        yield client
    finally:
        client.close()


@pytest.fixture
def control(demo_http):
    return FaultControlClient(client=demo_http)

"""
Fault-injecting reverse proxy.
Sits in front of FAULT_UPSTREAM and applies the FAULT_SPEC stack, e.g.

    FAULT_UPSTREAM=http://127.0.0.1:8000 \
    FAULT_SPEC='[{"kind": "delay", "ratio": 0.1, "duration_ms": 500}, {"kind": "abort", "ratio": 0.01}]' \
    python -m services.fault_proxy.main
"""
import asyncio

from httpfault.config.models import build_faults, parse_faults
from httpfault.config.settings import get_settings
from httpfault.core import decision
from httpfault.core.handler import chain
from httpfault.observability.logging import get_logger, setup_logging
from httpfault.transport.proxy import UpstreamProxy
from httpfault.transport.server import FaultServer

log = get_logger(__name__)


async def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    decision.seed(settings.seed)

    faults = build_faults(parse_faults(settings.fault_spec))
    proxy = UpstreamProxy(settings.upstream)
    server = FaultServer(chain(proxy, *faults), host=settings.listen_host, port=settings.listen_port)
    log.info("proxying", upstream=settings.upstream, faults=[f.kind for f in faults])
    try:
        async with server:
            await server.serve_forever()
    finally:
        await proxy.aclose()


if __name__ == "__main__":
    asyncio.run(main())

import os
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from pydantic import BaseModel, Field, field_validator

from services.fault_demo.app.core.state import FaultState
from httpfault.config.models import FaultIn, parse_faults
from httpfault.config.settings import get_settings
from httpfault.core import decision
from httpfault.observability.logging import get_logger, setup_logging
from httpfault.transport.asgi import FaultMiddleware, install_abort_log_filter

HTTP_HOST = os.getenv("DEMO_HTTP_HOST", "127.0.0.1")
HTTP_PORT = int(os.getenv("DEMO_HTTP_PORT", "8000"))

SETTINGS = get_settings()
decision.seed(SETTINGS.seed)

# ASGI servers cannot drop a connection without answering, so an abort would
# reach clients as a plain 500; aborts belong in front of FaultServer instead
ASGI_UNSUPPORTED_KINDS = frozenset({"abort", "delay_with_abort"})


class FaultsIn(BaseModel):
    faults: list[FaultIn] = Field(default_factory=list)

    @field_validator("faults")
    @classmethod
    def no_aborts(cls, faults):
        bad = sorted({f.kind for f in faults} & ASGI_UNSUPPORTED_KINDS)
        if bad:
            raise ValueError(f"{', '.join(bad)} not supported behind ASGI; use services.fault_proxy")
        return faults


STATE = FaultState()
STATE.replace(FaultsIn(faults=parse_faults(SETTINGS.fault_spec)).faults)

log = get_logger(__name__)

# the service under test; every request to it goes through the fault stack
target = FastAPI(title="Fault Demo Target")


@target.get("/ping")
def ping():
    return PlainTextResponse("pong")


@target.post("/echo")
async def echo(request: Request):
    body = await request.body()
    return Response(content=body, media_type=request.headers.get("content-type", "application/octet-stream"))


app = FastAPI(title="Fault Demo", version="0.1.0")
app.mount("/target", FaultMiddleware(target, faults=lambda: STATE.faults))


@app.get("/health")
def health():
    return {"status": "ok", "faults": len(STATE.faults)}


@app.get("/control/faults")
def get_faults():
    return {"faults": STATE.dump()}


@app.post("/control/faults")
def set_faults(f: FaultsIn):
    STATE.replace(f.faults)
    log.info("faults updated", faults=STATE.dump())
    return {"status": "faults_updated", "faults": STATE.dump()}


@app.delete("/control/faults")
def clear_faults():
    STATE.clear()
    return {"status": "faults_cleared", "faults": STATE.dump()}


@app.on_event("startup")
async def configure_logging():
    setup_logging(SETTINGS.log_level, SETTINGS.log_format)
    # injected aborts are not server errors
    install_abort_log_filter()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HTTP_HOST, port=HTTP_PORT, reload=False)

"""Pydantic models for fault configuration coming from env vars or the control API."""

from __future__ import annotations
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from httpfault.core.faults import Abort, Delay, DelayWithAbort, DelayWithError, Error, Fault

# ratio is not bounded; out-of-range values saturate
StatusCode = Annotated[int, Field(ge=100, le=599)]
DurationMs = Annotated[int, Field(ge=0, le=600_000)]


class DelayIn(BaseModel):
    kind: Literal["delay"] = "delay"
    ratio: float = 1.0
    duration_ms: DurationMs = 0
    afterward: bool = False

    def build(self) -> Delay:
        return Delay(ratio=self.ratio, duration=self.duration_ms / 1000.0, afterward=self.afterward)


class ErrorIn(BaseModel):
    kind: Literal["error"] = "error"
    ratio: float = 1.0
    status_code: StatusCode = 500
    status_text: str = ""

    def build(self) -> Error:
        return Error(ratio=self.ratio, status_code=self.status_code, status_text=self.status_text)


class DelayWithErrorIn(BaseModel):
    kind: Literal["delay_with_error"] = "delay_with_error"
    ratio: float = 1.0
    duration_ms: DurationMs = 0
    status_code: StatusCode = 500
    status_text: str = ""

    def build(self) -> DelayWithError:
        return DelayWithError(
            ratio=self.ratio,
            duration=self.duration_ms / 1000.0,
            status_code=self.status_code,
            status_text=self.status_text,
        )


class AbortIn(BaseModel):
    kind: Literal["abort"] = "abort"
    ratio: float = 1.0

    def build(self) -> Abort:
        return Abort(ratio=self.ratio)


class DelayWithAbortIn(BaseModel):
    kind: Literal["delay_with_abort"] = "delay_with_abort"
    ratio: float = 1.0
    duration_ms: DurationMs = 0

    def build(self) -> DelayWithAbort:
        return DelayWithAbort(ratio=self.ratio, duration=self.duration_ms / 1000.0)


FaultIn = Annotated[
    Union[DelayIn, ErrorIn, DelayWithErrorIn, AbortIn, DelayWithAbortIn],
    Field(discriminator="kind"),
]

_fault_list = TypeAdapter(list[FaultIn])


def parse_faults(json_text: str) -> list[FaultIn]:
    return _fault_list.validate_json(json_text)


def build_faults(configs: list[FaultIn]) -> list[Fault]:
    return [c.build() for c in configs]


def dump_faults(configs: list[FaultIn]) -> list[dict]:
    return [c.model_dump() for c in configs]

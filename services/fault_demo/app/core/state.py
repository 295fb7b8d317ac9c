from __future__ import annotations
from dataclasses import dataclass, field

from httpfault.config.models import FaultIn, build_faults, dump_faults
from httpfault.core.faults import Fault


@dataclass
class FaultState:
    configs: list[FaultIn] = field(default_factory=list)
    # built stack, replaced as a whole so in-flight requests keep the old one
    faults: tuple[Fault, ...] = ()

    def replace(self, configs: list[FaultIn]) -> None:
        faults = tuple(build_faults(configs))
        self.configs = list(configs)
        self.faults = faults

    def clear(self) -> None:
        self.replace([])

    def dump(self) -> list[dict]:
        return dump_faults(self.configs)

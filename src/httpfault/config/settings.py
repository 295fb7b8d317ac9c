from __future__ import annotations

from dataclasses import dataclass
import os


@dataclass(frozen=True)
class Settings:
    listen_host: str
    listen_port: int
    upstream: str
    fault_spec: str
    seed: int | None
    log_level: str
    log_format: str


def get_settings() -> Settings:
    """
    Centralized configuration for the services.
    Values come from environment variables with safe defaults.
    FAULT_SPEC is a JSON list of fault configs; the default injects nothing.
    """
    seed = os.getenv("FAULT_SEED", "")
    return Settings(
        listen_host=os.getenv("FAULT_LISTEN_HOST", "127.0.0.1"),
        listen_port=int(os.getenv("FAULT_LISTEN_PORT", "8080")),
        upstream=os.getenv("FAULT_UPSTREAM", "http://127.0.0.1:8000"),
        fault_spec=os.getenv("FAULT_SPEC", "[]"),
        seed=int(seed) if seed else None,
        log_level=os.getenv("FAULT_LOG_LEVEL", "INFO"),
        log_format=os.getenv("FAULT_LOG_FORMAT", "console"),
    )

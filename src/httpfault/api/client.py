from __future__ import annotations
from typing import Any

import httpx


class FaultControlClient:
    """Client for the fault demo service control API."""

    def __init__(self, base_url: str = "http://127.0.0.1:8000", timeout_s: float = 2.0, *, client: httpx.Client | None = None):
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout_s)

    def close(self) -> None:
        self._client.close()

    def health(self) -> dict:
        r = self._client.get("/health")
        r.raise_for_status()
        return r.json()

    def get_faults(self) -> list[dict]:
        r = self._client.get("/control/faults")
        r.raise_for_status()
        return r.json()["faults"]

    def set_faults(self, faults: list[dict[str, Any]]) -> list[dict]:
        r = self._client.post("/control/faults", json={"faults": faults})
        r.raise_for_status()
        return r.json()["faults"]

    def clear_faults(self) -> list[dict]:
        r = self._client.delete("/control/faults")
        r.raise_for_status()
        return r.json()["faults"]

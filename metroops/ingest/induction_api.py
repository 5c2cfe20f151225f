"""HTTP client for the external induction optimizer service.

The service owns the heavyweight optimizer, conflict store, demand model and
station catalogue; this client only forwards calls and normalises failures
into ``InductionApiError``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

__all__ = ["InductionApiError", "InductionApiNotConfigured", "InductionApiClient"]


class InductionApiError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InductionApiNotConfigured(InductionApiError):
    def __init__(self) -> None:
        super().__init__("Induction API URL not configured")


class InductionApiClient:
    def __init__(self, base_url: Optional[str], timeout: float = 10.0, session: Optional[requests.Session] = None) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _request(self, method: str, path: str, *, json: Any = None) -> Any:
        if not self.configured:
            raise InductionApiNotConfigured()
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, json=json, timeout=self.timeout,
                                     headers={"Content-Type": "application/json"})
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, url, e)
            raise InductionApiError(f"request to {path} failed: {e}") from e
        if not 200 <= r.status_code < 300:
            logger.warning("%s %s returned %s", method, url, r.status_code)
            raise InductionApiError(f"{path} returned {r.status_code}", status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise InductionApiError(f"{path} returned invalid JSON", status_code=r.status_code) from e

    def run_induction(self) -> Any:
        return self._request("POST", "/induction/run", json={})

    def list_conflicts(self) -> Any:
        return self._request("GET", "/api/conflicts")

    def train_conflicts(self, train_id: str) -> Any:
        return self._request("GET", f"/api/conflicts/{quote(train_id, safe='')}")

    def forecast_demand(self, payload: Dict[str, Any]) -> Any:
        return self._request("POST", "/api/demand/forecast", json=payload or {})

    def list_stations(self) -> Any:
        return self._request("GET", "/api/stations")

    def trigger_training(self) -> Any:
        return self._request("POST", "/api/train")

    def chat(self, message: str, role: str) -> Optional[str]:
        """Upstream chat reply, or None when the service answered without one."""
        data = self._request("POST", "/chat", json={"message": message, "role": role})
        reply = data.get("reply") if isinstance(data, dict) else None
        return reply if isinstance(reply, str) else None

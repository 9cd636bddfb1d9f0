"""HTTP health check for the monitoring stack."""

from __future__ import annotations

import logging
from typing import Optional

import requests

from ..errors import StageError

logger = logging.getLogger(__name__)


class MonitoringCheck:
    """Checks Grafana's health endpoint after a deployment."""

    def __init__(self, session: Optional[requests.Session] = None, timeout: int = 10) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout

    def check(self, base_url: str) -> dict:
        url = f"{base_url.rstrip('/')}/api/health"
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise StageError(f"Monitoring health check failed for {url}: {exc}") from exc
        if not 200 <= resp.status_code < 300:
            raise StageError(f"Monitoring health check returned HTTP {resp.status_code} for {url}")
        try:
            payload = resp.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}
        logger.info("   📈 Grafana health: %s", payload.get("database", "ok"))
        return {"url": url, "status_code": resp.status_code, "health": payload}

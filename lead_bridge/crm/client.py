"""Thin client for the CRM's inbound-webhook REST API."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol

import requests

from ..errors import UpstreamError
from ..rate_limit import RateLimiter

LOGGER = logging.getLogger(__name__)


class CrmProtocol(Protocol):
    """Interface the resolvers and creators rely on."""

    def call(self, method: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:  # pragma: no cover - runtime protocol
        """Invoke ``method`` and return the decoded response envelope."""


def result_of(response: Mapping[str, Any], method: str) -> Any:
    """Return ``response['result']`` or raise when the CRM reported an error."""

    if response.get("error"):
        raise UpstreamError(
            f"CRM method {method} failed: {response.get('error')} {response.get('error_description', '')}".strip(),
            target=method,
        )
    if "result" not in response:
        raise UpstreamError(f"CRM method {method} returned no result", target=method)
    return response["result"]


class CrmClient:
    """POST ``{webhook_url}/{method}.json`` and decode the reply."""

    def __init__(
        self,
        webhook_url: str,
        *,
        rate_limiter: Optional[RateLimiter] = None,
        timeout_seconds: Optional[float] = 60.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not webhook_url:
            raise ValueError("A CRM webhook URL is required")
        self.webhook_url = webhook_url.rstrip("/")
        self._rate_limiter = rate_limiter or RateLimiter(None)
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    def call(self, method: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.webhook_url}/{method}.json"
        self._rate_limiter.acquire()
        LOGGER.debug("CRM call %s", method)
        try:
            response = self._session.post(url, json=dict(params or {}), timeout=self._timeout)
        except requests.RequestException as exc:
            raise UpstreamError(f"CRM method {method} unreachable: {exc}", target=method) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(
                f"CRM method {method} returned an undecodable body (HTTP {response.status_code})",
                status_code=response.status_code,
                target=method,
            ) from exc

        if not isinstance(payload, dict):
            raise UpstreamError(f"CRM method {method} returned {type(payload).__name__}", target=method)
        if response.status_code >= 400 and not payload.get("error"):
            raise UpstreamError(
                f"CRM method {method} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                target=method,
            )
        return payload

    def result(self, method: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return result_of(self.call(method, params), method)

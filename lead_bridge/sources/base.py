"""HTTP plumbing shared by the listing-provider adapters."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import requests

from ..errors import UpstreamError

LOGGER = logging.getLogger(__name__)


@dataclass
class ApiClientConfig:
    """Runtime configuration shared by the provider API clients."""

    base_url: str = "https://api-v2.mycrm.com"
    timeout_seconds: Optional[float] = 60.0
    extra_headers: Dict[str, str] = field(default_factory=lambda: {"X-MyCRM-Expand-Data": "true"})


class JsonApiClient:
    """Issue requests and decode JSON bodies, translating failures to :class:`UpstreamError`."""

    def __init__(
        self,
        config: Optional[ApiClientConfig] = None,
        *,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.config = config or ApiClientConfig()
        self._session = session or requests.Session()

    def url_for(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/{path.lstrip('/')}"

    def get_json(
        self,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Any:
        url = self.url_for(path)
        merged_headers = {"Content-Type": "application/json", **self.config.extra_headers, **(headers or {})}
        LOGGER.debug("GET %s params=%s", url, params)
        try:
            response = self._session.get(
                url,
                params=dict(params or {}),
                headers=merged_headers,
                timeout=self.config.timeout_seconds,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"Request to {url} failed: {exc}", target=url) from exc
        return decode_json_response(response, url)


def decode_json_response(response: requests.Response, target: str) -> Any:
    """Return the decoded body of a successful response."""

    if not 200 <= response.status_code < 300:
        raise UpstreamError(
            f"HTTP error {response.status_code} from {target}: {response.text[:500]}",
            status_code=response.status_code,
            target=target,
        )
    if not response.content or not response.content.strip():
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamError(
            f"Undecodable response body from {target}: {exc}",
            status_code=response.status_code,
            target=target,
        ) from exc

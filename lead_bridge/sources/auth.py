"""Client-credentials bearer tokens for the listing provider, cached on disk."""
from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Callable, Optional

import requests

from ..errors import UpstreamError
from .base import decode_json_response

LOGGER = logging.getLogger(__name__)

DEFAULT_TOKEN_URL = "https://auth.propertyfinder.com/auth/oauth/v1/token"


class TokenProvider:
    """Return a valid access token, refreshing it once the cached one expires."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        cache_path: str | Path,
        *,
        token_url: str = DEFAULT_TOKEN_URL,
        timeout_seconds: Optional[float] = 60.0,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self.cache_path = Path(cache_path)
        self.token_url = token_url
        self._timeout = timeout_seconds
        self._session = session or requests.Session()
        self._clock = clock

    def get_token(self) -> str:
        cached = self._read_cache()
        if cached:
            return cached
        return self._fetch_token()

    def _read_cache(self) -> Optional[str]:
        if not self.cache_path.exists():
            return None
        try:
            data = json.loads(self.cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            LOGGER.warning("Ignoring unreadable token cache %s", self.cache_path)
            return None
        if not isinstance(data, dict):
            return None
        token = data.get("access_token")
        try:
            expires_at = float(data.get("expires_at") or 0)
        except (TypeError, ValueError):
            LOGGER.warning("Ignoring token cache %s with invalid expiry %r", self.cache_path, data.get("expires_at"))
            return None
        if token and self._clock() < expires_at:
            return str(token)
        return None

    def _fetch_token(self) -> str:
        LOGGER.info("Requesting a new access token from %s", self.token_url)
        try:
            response = self._session.post(
                self.token_url,
                json={"scope": "openid", "grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
                headers={"Content-Type": "application/json"},
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"Token request failed: {exc}", target=self.token_url) from exc

        data = decode_json_response(response, self.token_url)
        if not isinstance(data, dict) or not data.get("access_token"):
            raise UpstreamError(f"Invalid token response: {data!r}", target=self.token_url)

        data["expires_at"] = self._clock() + float(data.get("expires_in") or 0)
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            self.cache_path.write_text(json.dumps(data), encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("Could not cache access token in %s: %s", self.cache_path, exc)
        return str(data["access_token"])

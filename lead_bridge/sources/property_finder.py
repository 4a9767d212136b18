"""Adapter for the listing provider's lead, call-tracking and WhatsApp endpoints."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..errors import UpstreamError
from ..models import SOURCE_CALL, SOURCE_CHAT, SOURCE_EMAIL, RawLead
from .base import ApiClientConfig, JsonApiClient

LOGGER = logging.getLogger(__name__)


def _created_on(date: str) -> Dict[str, str]:
    return {"filters[created][from]": date, "filters[created][to]": date}


def _called_from(date: str) -> Dict[str, str]:
    return {"filters[date][from]": date}


@dataclass(frozen=True)
class Endpoint:
    """Where a source type lives and which envelope key wraps its records."""

    path: str
    envelope: str
    date_filter: Callable[[str], Dict[str, str]]


ENDPOINTS: Dict[str, Endpoint] = {
    SOURCE_EMAIL: Endpoint("leads", "leads", _created_on),
    SOURCE_CALL: Endpoint("calltrackings", "call_trackings", _called_from),
    SOURCE_CHAT: Endpoint("whatsapp-leads", "whatsapp", _created_on),
}


class PropertyFinderSource:
    """Fetch one day's worth of raw lead records of a given type."""

    name = "property_finder"

    def __init__(
        self,
        config: Optional[ApiClientConfig] = None,
        *,
        client: Optional[JsonApiClient] = None,
    ) -> None:
        self._client = client or JsonApiClient(config)

    def fetch(self, source_type: str, date: str, token: str) -> List[RawLead]:
        try:
            endpoint = ENDPOINTS[source_type]
        except KeyError:
            raise ValueError(f"Unknown source type '{source_type}'") from None

        data = self._client.get_json(
            endpoint.path,
            params=endpoint.date_filter(date),
            headers={"Authorization": f"Bearer {token}"},
        )
        records = unwrap_envelope(data, endpoint.envelope)
        if not records:
            LOGGER.info("No new %s leads available for %s", source_type, date)
        else:
            LOGGER.info("Fetched %s %s leads for %s", len(records), source_type, date)
        return records


def unwrap_envelope(data: Any, key: str) -> List[RawLead]:
    """Return the record list stored under ``key``; empty payloads yield ``[]``."""

    if not data:
        return []
    if not isinstance(data, dict):
        raise UpstreamError(f"Unexpected response payload of type {type(data).__name__}")
    records = data.get(key) or []
    if not isinstance(records, list):
        raise UpstreamError(f"Envelope key '{key}' does not hold a list")
    return [record for record in records if isinstance(record, dict)]

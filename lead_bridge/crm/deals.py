"""Submit mapped deal payloads to the CRM."""
from __future__ import annotations

import logging
from typing import Optional

from ..errors import UpstreamError
from ..models import DealFields
from .client import CrmProtocol, result_of

LOGGER = logging.getLogger(__name__)


class DealCreator:
    """Create a deal and return its id.

    When ``lead_id_field`` is set the creator first searches for a deal
    already carrying the same source lead id and returns it instead of
    writing a duplicate.
    """

    def __init__(self, crm: CrmProtocol, *, lead_id_field: Optional[str] = None) -> None:
        self._crm = crm
        self._lead_id_field = lead_id_field

    def create(self, fields: DealFields) -> int:
        existing = self._find_existing(fields)
        if existing is not None:
            LOGGER.warning("Deal %s already exists for source lead %s", existing, fields.get(self._lead_id_field))
            return existing

        method = "crm.deal.add"
        deal_id = result_of(self._crm.call(method, {"fields": dict(fields)}), method)
        if not deal_id:
            raise UpstreamError("CRM did not return a deal id", target=method)
        try:
            return int(deal_id)
        except (TypeError, ValueError) as exc:
            raise UpstreamError(f"CRM returned an invalid deal id {deal_id!r}", target=method) from exc

    def _find_existing(self, fields: DealFields) -> Optional[int]:
        if not self._lead_id_field or not fields.get(self._lead_id_field):
            return None
        method = "crm.deal.list"
        deals = result_of(
            self._crm.call(
                method,
                {"filter": {self._lead_id_field: fields[self._lead_id_field]}, "select": ["ID"]},
            ),
            method,
        )
        if not deals or not isinstance(deals, list) or not isinstance(deals[0], dict):
            return None
        try:
            return int(deals[0]["ID"])
        except (KeyError, TypeError, ValueError):
            return None

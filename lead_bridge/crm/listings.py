"""Cached lookups against the CRM's listing directory."""
from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from ..config import ListingFields
from ..errors import UpstreamError
from .client import CrmProtocol, result_of

LOGGER = logging.getLogger(__name__)

Listing = Mapping[str, Any]


class ListingDirectory:
    """Find listings by property reference.

    Results (including "not found") are cached for the lifetime of the
    directory so the owner lookup and the price lookup share one request.
    """

    def __init__(self, crm: CrmProtocol, fields: Optional[ListingFields] = None) -> None:
        self._crm = crm
        self.fields = fields or ListingFields()
        self._cache: Dict[str, Optional[Listing]] = {}

    def find(self, reference: str) -> Optional[Listing]:
        """Return the first listing carrying ``reference``; raises :class:`UpstreamError`."""

        if not reference:
            return None
        if reference in self._cache:
            return self._cache[reference]

        method = "crm.item.list"
        result = result_of(
            self._crm.call(
                method,
                {
                    "entityTypeId": self.fields.entity_type_id,
                    "filter": {self.fields.reference: reference},
                    "select": self.fields.select,
                },
            ),
            method,
        )
        items = result.get("items") if isinstance(result, dict) else None
        listing = items[0] if isinstance(items, list) and items and isinstance(items[0], dict) else None
        if listing is None:
            LOGGER.warning("No listing found with reference number: %s", reference)
        self._cache[reference] = listing
        return listing

    def price(self, reference: str) -> Optional[str]:
        """Return the listing price for ``reference``, or ``None`` when unavailable."""

        if not reference or not self.fields.price:
            return None
        try:
            listing = self.find(reference)
        except UpstreamError as exc:
            LOGGER.warning("Price lookup for %s failed: %s", reference, exc)
            return None
        if not listing:
            return None
        value = listing.get(self.fields.price)
        if value in (None, "", "null"):
            return None
        return str(value)

"""Find or create the CRM contact for a lead's client."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from ..errors import UpstreamError
from ..models import LeadData
from .client import CrmProtocol, result_of

LOGGER = logging.getLogger(__name__)


class ContactResolver:
    """Look up a contact by phone (or email when no phone is known), else create one.

    Ids resolved during a run are remembered so repeated enquiries from the
    same client attach to one contact.
    """

    def __init__(self, crm: CrmProtocol, *, brand: str = "Property Finder") -> None:
        self._crm = crm
        self._brand = brand
        self._known: Dict[Tuple[str, str], int] = {}

    def resolve(self, lead: LeadData, owner_id: int, mode: str) -> int:
        key = self._lookup_key(lead)
        if key is not None:
            if key in self._known:
                LOGGER.debug("Reusing contact %s for lead %s", self._known[key], lead.id)
                return self._known[key]
            existing = self.find({key[0]: key[1]})
            if existing is not None:
                LOGGER.info("Lead %s matched existing contact %s", lead.id, existing)
                self._known[key] = existing
                return existing

        contact_id = self.create(lead, owner_id, mode)
        if key is not None:
            self._known[key] = contact_id
        return contact_id

    @staticmethod
    def _lookup_key(lead: LeadData) -> Optional[Tuple[str, str]]:
        if lead.client_phone:
            return ("PHONE", lead.client_phone)
        if lead.client_email:
            return ("EMAIL", lead.client_email)
        return None

    def find(self, contact_filter: Dict[str, Any]) -> Optional[int]:
        method = "crm.contact.list"
        contacts = result_of(
            self._crm.call(method, {"filter": contact_filter, "select": ["ID", "EMAIL"]}),
            method,
        )
        if not contacts or not isinstance(contacts, list) or not isinstance(contacts[0], dict):
            return None
        try:
            return int(contacts[0]["ID"])
        except (KeyError, TypeError, ValueError):
            return None

    def display_name(self, lead: LeadData, mode: str) -> str:
        if lead.has_known_client_name:
            return lead.client_name
        return f"Unknown from {self._brand} {mode.capitalize()} ({lead.client_phone})"

    def create(self, lead: LeadData, owner_id: int, mode: str) -> int:
        fields: Dict[str, Any] = {
            "NAME": self.display_name(lead, mode),
            "ASSIGNED_BY_ID": owner_id,
        }
        if lead.client_phone:
            fields["PHONE"] = [{"VALUE": lead.client_phone, "VALUE_TYPE": "WORK"}]
        if lead.client_email:
            fields["EMAIL"] = [{"VALUE": lead.client_email, "VALUE_TYPE": "WORK"}]

        method = "crm.contact.add"
        contact_id = result_of(self._crm.call(method, {"fields": fields}), method)
        try:
            contact_id = int(contact_id)
        except (TypeError, ValueError) as exc:
            raise UpstreamError(f"CRM returned an invalid contact id {contact_id!r}", target=method) from exc
        LOGGER.info("Created contact %s for lead %s", contact_id, lead.id)
        return contact_id

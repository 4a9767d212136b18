"""Decide which CRM user owns a lead.

Resolution order:

1. the listing matching the lead's property reference: its owner id, else a
   user matching its listing-owner name, else a user matching its agent email;
2. a user matching the listing agent's first and last name;
3. optionally, a user matching the agent's phone number;
4. the campaign's default owner.

Every user lookup excludes the campaign's disabled accounts. Lookup errors are
logged and treated as misses.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, Optional, Tuple

from ..config import CampaignConfig
from ..errors import UpstreamError
from ..models import LeadData
from .client import CrmProtocol, result_of
from .listings import ListingDirectory

LOGGER = logging.getLogger(__name__)


def split_owner_name(name: str) -> Tuple[str, Optional[str], Optional[str]]:
    """Split a full name into ``(first, middle, last)``."""

    parts = name.split()
    first = parts[0]
    last = parts[-1] if len(parts) > 1 else None
    middle = " ".join(parts[1:-1]) or None
    return first, middle, last


def split_agent_name(name: str) -> Tuple[str, Optional[str]]:
    """Return the first two space-separated tokens of ``name``.

    Only two tokens are considered: ``"Mary Ann Smith"`` yields
    ``("Mary", "Ann")`` and a single token yields no last name.
    """

    tokens = name.split(" ")
    return tokens[0], (tokens[1] or None) if len(tokens) > 1 else None


class OwnerResolver:
    """Resolve the responsible CRM user id for a lead."""

    def __init__(
        self,
        crm: CrmProtocol,
        listings: ListingDirectory,
        campaign: Optional[CampaignConfig] = None,
    ) -> None:
        self._crm = crm
        self._listings = listings
        self._campaign = campaign or CampaignConfig()

    def resolve(self, lead: LeadData) -> int:
        owner_id: Optional[int] = None
        if lead.property_reference:
            owner_id = self._from_listing(lead.property_reference)
        if owner_id is None and lead.agent_name:
            owner_id = self._from_agent_name(lead.agent_name)
        if owner_id is None and self._campaign.resolve_by_agent_phone and lead.agent_phone:
            owner_id = self._from_agent_phone(lead.agent_phone)

        if owner_id is None:
            LOGGER.info(
                "No owner matched lead %s; assigning default owner %s",
                lead.id,
                self._campaign.default_owner_id,
            )
            return self._campaign.default_owner_id

        remapped = self._campaign.remap_owner(owner_id)
        if remapped != owner_id:
            LOGGER.info("Owner %s of lead %s remapped to %s", owner_id, lead.id, remapped)
        return remapped

    # ------------------------------------------------------------------
    def _from_listing(self, reference: str) -> Optional[int]:
        try:
            listing = self._listings.find(reference)
        except UpstreamError as exc:
            LOGGER.warning("Listing lookup for %s failed: %s", reference, exc)
            return None
        if not listing:
            return None

        fields = self._listings.fields
        owner_id = listing.get(fields.owner_id)
        if owner_id and str(owner_id) != "null":
            try:
                return int(owner_id)
            except (TypeError, ValueError):
                LOGGER.warning("Listing %s has a non-numeric owner id %r", reference, owner_id)

        owner_name = str(listing.get(fields.owner_name) or "").strip()
        if owner_name:
            first, middle, last = split_owner_name(owner_name)
            return self.find_user({"%NAME": first, "%SECOND_NAME": middle, "%LAST_NAME": last})

        agent_email = str(listing.get(fields.agent_email) or "").strip()
        if agent_email:
            return self.find_user({"EMAIL": agent_email})

        LOGGER.warning("No agent email found for reference number: %s", reference)
        return None

    def _from_agent_name(self, agent_name: str) -> Optional[int]:
        first, last = split_agent_name(agent_name)
        if not last:
            LOGGER.info("Agent name %r has no last name; skipping name lookup", agent_name)
            return None
        return self.find_user({"%NAME": first, "%LAST_NAME": last})

    def _from_agent_phone(self, agent_phone: str) -> Optional[int]:
        digits = re.sub(r"\s+", "", agent_phone)
        return self.find_user({"%PERSONAL_MOBILE": digits}) or self.find_user({"%WORK_PHONE": digits})

    def find_user(self, criteria: Dict[str, Any]) -> Optional[int]:
        """Return the first active user matching ``criteria``."""

        user_filter = {key: value for key, value in criteria.items() if value is not None}
        if self._campaign.disabled_user_ids:
            user_filter["!ID"] = list(self._campaign.disabled_user_ids)

        method = "user.get"
        try:
            users = result_of(self._crm.call(method, {"filter": user_filter}), method)
        except UpstreamError as exc:
            LOGGER.warning("Error getting user for %s: %s", criteria, exc)
            return None

        if not users or not isinstance(users, list) or not isinstance(users[0], dict):
            return None
        try:
            return int(users[0].get("ID"))
        except (TypeError, ValueError):
            return None

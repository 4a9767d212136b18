"""Translate a normalised lead into the CRM deal payload for one campaign."""
from __future__ import annotations

from typing import Callable, Optional

from ..config import CampaignConfig
from ..models import CallDetails, DealFields, LeadData

NO_REFERENCE = "No reference"

PriceLookup = Callable[[str], Optional[str]]


def build_title(brand: str, mode: str, reference: str) -> str:
    return f"{brand} - {mode.capitalize()} - {reference or NO_REFERENCE}"


def format_call_comments(call: CallDetails) -> str:
    lines = [
        f"Receiver Number: {call.receiver_phone}",
        f"Call Status: {call.status}",
        f"Call Start Time: {call.call_start}",
        f"Call End Time: {call.call_end}",
        f"Call Duration: {call.call_time}",
        f"Call Connected Duration: {call.talk_time}",
        f"Call Waiting Duration: {call.wait_time}",
        f"Call Recording URL: {call.recording_url}",
    ]
    return "\n".join(lines)


class FieldMapper:
    """Build the ``crm.deal.add`` field dictionary."""

    def __init__(self, campaign: Optional[CampaignConfig] = None, *, price_lookup: Optional[PriceLookup] = None) -> None:
        self._campaign = campaign or CampaignConfig()
        self._price_lookup = price_lookup

    def map(self, lead: LeadData, owner_id: int, contact_id: int, mode: str) -> DealFields:
        campaign = self._campaign
        vocabulary = campaign.fields

        fields: DealFields = {"TITLE": build_title(campaign.brand, mode, lead.property_reference)}
        if vocabulary.reference:
            fields[vocabulary.reference] = lead.property_reference
        if vocabulary.client_name:
            fields[vocabulary.client_name] = lead.client_name
        for field_id in vocabulary.client_email:
            fields[field_id] = lead.client_email
        for field_id in vocabulary.client_phone:
            fields[field_id] = lead.client_phone
        if vocabulary.enquiry_datetime:
            fields[vocabulary.enquiry_datetime] = lead.enquiry_datetime
        if vocabulary.mode and mode in vocabulary.mode_values:
            fields[vocabulary.mode] = vocabulary.mode_values[mode]
        if vocabulary.collection_source and mode in vocabulary.collection_source_values:
            fields[vocabulary.collection_source] = vocabulary.collection_source_values[mode]
        if vocabulary.lead_id:
            fields[vocabulary.lead_id] = lead.id

        fields["COMMENTS"] = format_call_comments(lead.call) if lead.call and lead.call.has_recording else lead.message
        source_id = campaign.source_id_for(mode)
        if source_id:
            fields["SOURCE_ID"] = source_id
        if campaign.category_id is not None:
            fields["CATEGORY_ID"] = campaign.category_id
        fields["ASSIGNED_BY_ID"] = owner_id
        fields["CONTACT_ID"] = contact_id
        fields["OPPORTUNITY"] = self._price(lead.property_reference)
        return fields

    def _price(self, reference: str) -> str:
        if not reference or self._price_lookup is None:
            return ""
        return self._price_lookup(reference) or ""

"""Normalisation of raw provider records into :class:`LeadData` values.

Call-tracking, email and WhatsApp records share no common envelope, so every
field is resolved through an ordered list of fallbacks. Missing or oddly typed
optional attributes degrade to empty values; only a missing identifier is an
error because the ledger cannot track such a record.
"""
from __future__ import annotations

import re
from typing import Any, Mapping, Optional

from .errors import MalformedLeadError
from .models import UNKNOWN_CLIENT_NAME, CallDetails, LeadData, RawLead

REFERENCE_PATTERN = re.compile(r"ref:\s*([a-zA-Z0-9-]+)")

_CALL_MARKERS = ("download_url", "call_start")


def extract_reference(text: Optional[str]) -> Optional[str]:
    """Return the token following ``ref:`` in free text, if any."""

    if not text or not isinstance(text, str):
        return None
    match = REFERENCE_PATTERN.search(text)
    if match:
        return match.group(1)
    return None


def lead_id_of(raw: RawLead) -> str:
    """Return the identifier used for the ledger, or ``""`` when absent."""

    return _text(raw.get("id"))


def is_call_record(raw: RawLead) -> bool:
    return any(marker in raw for marker in _CALL_MARKERS)


def normalize(raw: RawLead) -> LeadData:
    """Extract a :class:`LeadData` from a call, email or chat record."""

    lead_id = lead_id_of(raw)
    if not lead_id:
        raise MalformedLeadError(f"Lead record has no identifier: {sorted(raw)!r}")

    agent = _agent(raw)
    message = _first_message(raw)

    return LeadData(
        id=lead_id,
        property_reference=(
            _text(raw.get("property_reference"))
            or extract_reference(message)
            or _text(raw.get("reference"))
        ),
        agent_name=" ".join(
            part for part in (_text(agent.get("first_name")), _text(agent.get("last_name"))) if part
        ) or None,
        agent_phone=_text(agent.get("phone")) or None,
        agent_email=_text(agent.get("email")) or None,
        client_phone=_text(raw.get("phone")) or _text(raw.get("mobile")),
        client_email=_text(raw.get("email")),
        client_name=_client_name(raw),
        message=message,
        enquiry_datetime=_text(raw.get("created_at")) or _text(raw.get("call_start")),
        call=_call_details(raw, agent) if is_call_record(raw) else None,
    )


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, tuple)):
        return ""
    return str(value).strip()


def _mapping(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _agent(raw: RawLead) -> Mapping[str, Any]:
    return _mapping(_mapping(raw.get("user")).get("public"))


def _first_message(raw: RawLead) -> str:
    notes = raw.get("notes")
    if isinstance(notes, list) and notes:
        body = _text(_mapping(notes[0]).get("body"))
        if body:
            return body
    messages = raw.get("messages")
    if isinstance(messages, list) and messages:
        body = _text(_mapping(messages[0]).get("body"))
        if body:
            return body
    return _text(raw.get("message"))


def _client_name(raw: RawLead) -> str:
    explicit = _text(raw.get("client_name"))
    if explicit:
        return explicit
    combined = f"{_text(raw.get('first_name'))} {_text(raw.get('last_name'))}".strip()
    return combined or UNKNOWN_CLIENT_NAME


def _call_details(raw: RawLead, agent: Mapping[str, Any]) -> CallDetails:
    return CallDetails(
        status=_text(raw.get("status")),
        call_start=_text(raw.get("call_start")),
        call_end=_text(raw.get("call_end")),
        call_time=_text(raw.get("call_time")),
        talk_time=_text(raw.get("talk_time")),
        wait_time=_text(raw.get("wait_time")),
        recording_url=_text(raw.get("download_url")),
        receiver_phone=_text(agent.get("phone")),
    )

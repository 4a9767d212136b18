"""Data models passed between the normalizer, resolvers and orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

RawLead = Mapping[str, Any]
DealFields = Dict[str, Any]

# --- Source types and the channel ("mode") each one feeds ---

SOURCE_CALL = "call"
SOURCE_EMAIL = "email"
SOURCE_CHAT = "chat"

SOURCE_TYPES = (SOURCE_CALL, SOURCE_EMAIL, SOURCE_CHAT)

MODE_BY_SOURCE: Dict[str, str] = {
    SOURCE_CALL: "CALL",
    SOURCE_EMAIL: "EMAIL",
    SOURCE_CHAT: "WHATSAPP",
}

UNKNOWN_CLIENT_NAME = "Unknown"

# --- Outcome states ---

STATUS_CREATED = "created"
STATUS_SKIPPED = "skipped"
STATUS_FAILED = "failed"

STAGE_FETCHED = "fetched"
STAGE_NORMALIZED = "normalized"
STAGE_OWNER_RESOLVED = "owner_resolved"
STAGE_CONTACT_RESOLVED = "contact_resolved"
STAGE_FIELDS_MAPPED = "fields_mapped"
STAGE_DEAL_CREATED = "deal_created"
STAGE_CALL_ENRICHED = "call_enriched"
STAGE_RECORDED = "recorded"


@dataclass(frozen=True, slots=True)
class CallDetails:
    """Call-tracking attributes carried by call records only."""

    status: str = ""
    call_start: str = ""
    call_end: str = ""
    call_time: str = ""
    talk_time: str = ""
    wait_time: str = ""
    recording_url: str = ""
    receiver_phone: str = ""

    @property
    def has_recording(self) -> bool:
        return bool(self.recording_url)


@dataclass(frozen=True, slots=True)
class LeadData:
    """Uniform view of a call, email or chat lead."""

    id: str
    property_reference: str = ""
    agent_name: Optional[str] = None
    agent_phone: Optional[str] = None
    agent_email: Optional[str] = None
    client_phone: str = ""
    client_email: str = ""
    client_name: str = UNKNOWN_CLIENT_NAME
    message: str = ""
    enquiry_datetime: str = ""
    call: Optional[CallDetails] = None

    @property
    def is_call(self) -> bool:
        return self.call is not None

    @property
    def has_known_client_name(self) -> bool:
        return bool(self.client_name) and self.client_name != UNKNOWN_CLIENT_NAME


@dataclass(slots=True)
class LeadOutcome:
    """What happened to a single lead during a run.

    ``stage`` is the last pipeline step that completed, so a failed outcome
    names the step before the one that raised.
    """

    lead_id: str
    mode: str
    status: str
    stage: str = STAGE_FETCHED
    deal_id: Optional[int] = None
    contact_id: Optional[int] = None
    owner_id: Optional[int] = None
    call_id: Optional[str] = None
    error: str = ""

    def as_row(self) -> Dict[str, Any]:
        """Return a flat representation for the run report."""
        return {
            "lead_id": self.lead_id,
            "mode": self.mode,
            "status": self.status,
            "stage": self.stage,
            "deal_id": self.deal_id if self.deal_id is not None else "",
            "contact_id": self.contact_id if self.contact_id is not None else "",
            "owner_id": self.owner_id if self.owner_id is not None else "",
            "call_id": self.call_id or "",
            "error": self.error,
        }


@dataclass
class RunSummary:
    """Combined result of one ingestion run across all sources."""

    outcomes: List[LeadOutcome] = field(default_factory=list)
    failed_sources: List[str] = field(default_factory=list)
    aborted: bool = False

    def count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def created(self) -> int:
        return self.count(STATUS_CREATED)

    @property
    def skipped(self) -> int:
        return self.count(STATUS_SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(STATUS_FAILED)

    @property
    def ok(self) -> bool:
        return not self.aborted and not self.failed_sources and self.failed == 0

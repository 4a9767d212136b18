"""Ingest listing-provider leads into CRM deals, contacts and calls."""

from . import models  # noqa: F401
from .errors import LeadBridgeError, LedgerIOError, MalformedLeadError, UpstreamError  # noqa: F401
from .ledger import ProcessedLedger  # noqa: F401
from .models import (
    CallDetails,
    LeadData,
    LeadOutcome,
    RunSummary,
)
from .normalize import extract_reference, normalize  # noqa: F401
from .orchestrator import IngestionOrchestrator  # noqa: F401

__all__ = [
    "CallDetails",
    "IngestionOrchestrator",
    "LeadBridgeError",
    "LeadData",
    "LeadOutcome",
    "LedgerIOError",
    "MalformedLeadError",
    "ProcessedLedger",
    "RunSummary",
    "UpstreamError",
    "extract_reference",
    "normalize",
    "crm",
    "sources",
    "orchestrator",
]

"""Exception hierarchy shared by the source adapter, CRM client and ledger."""
from __future__ import annotations

from typing import Optional


class LeadBridgeError(RuntimeError):
    """Base class for errors raised by the ingestion pipeline."""


class UpstreamError(LeadBridgeError):
    """Raised when the listing provider or the CRM fails or returns garbage."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        target: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.target = target


class LedgerIOError(LeadBridgeError):
    """Raised when the processed-lead ledger cannot be read, written or locked."""


class MalformedLeadError(LeadBridgeError, ValueError):
    """Raised when a raw lead record lacks the identifier needed to track it."""

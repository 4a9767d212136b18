"""Ingestion orchestrator that drives every fetched lead through the CRM pipeline."""
from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional, Protocol, Sequence

from ..config import DEFAULT_SOURCES
from ..crm.calls import CallRecordingAttacher
from ..crm.contacts import ContactResolver
from ..crm.deals import DealCreator
from ..crm.mapping import FieldMapper
from ..crm.owners import OwnerResolver
from ..errors import LedgerIOError, UpstreamError
from ..ledger import ProcessedLedger
from ..models import (
    MODE_BY_SOURCE,
    STAGE_CALL_ENRICHED,
    STAGE_CONTACT_RESOLVED,
    STAGE_DEAL_CREATED,
    STAGE_FIELDS_MAPPED,
    STAGE_NORMALIZED,
    STAGE_OWNER_RESOLVED,
    STAGE_RECORDED,
    STATUS_CREATED,
    STATUS_FAILED,
    STATUS_SKIPPED,
    LeadData,
    LeadOutcome,
    RawLead,
    RunSummary,
)
from ..normalize import lead_id_of, normalize

LOGGER = logging.getLogger(__name__)


class LeadSourceProtocol(Protocol):
    """Protocol defining the interface that lead sources must follow."""

    name: str

    def fetch(self, source_type: str, date: str, token: str) -> List[RawLead]:  # pragma: no cover - runtime protocol
        """Return the raw records of ``source_type`` created on ``date``."""


class IngestionOrchestrator:
    """Fetch leads per source type and push each new one into the CRM.

    Each lead is an isolated unit of work: a failure is logged with the lead
    id and stage and the loop moves on, leaving the lead out of the ledger so
    the next run retries it. ``raise_on_error`` propagates the failure instead.
    Ledger write failures abort the run unless ``strict_ledger`` is off, in
    which case deduplication continues in memory.
    """

    def __init__(
        self,
        source: LeadSourceProtocol,
        ledger: ProcessedLedger,
        owners: OwnerResolver,
        contacts: ContactResolver,
        mapper: FieldMapper,
        deals: DealCreator,
        calls: Optional[CallRecordingAttacher] = None,
        *,
        token_provider: Optional[Callable[[], str]] = None,
        source_types: Sequence[str] = DEFAULT_SOURCES,
        normalizer: Callable[[RawLead], LeadData] = normalize,
        raise_on_error: bool = False,
        strict_ledger: bool = True,
    ) -> None:
        self._source = source
        self._ledger = ledger
        self._owners = owners
        self._contacts = contacts
        self._mapper = mapper
        self._deals = deals
        self._calls = calls
        self._token_provider = token_provider
        self._source_types = list(source_types)
        self._normalize = normalizer
        self._raise_on_error = raise_on_error
        self._strict_ledger = strict_ledger

    @property
    def source_types(self) -> List[str]:
        return list(self._source_types)

    def run(self, date: str) -> RunSummary:
        """Ingest every configured source type for ``date`` under the ledger lock."""

        summary = RunSummary()
        with self._ledger.lock():
            self._ledger.load()
            try:
                token = self._token_provider() if self._token_provider else ""
            except UpstreamError as exc:
                LOGGER.error("Unable to obtain a source API token: %s", exc)
                summary.failed_sources.extend(self._source_types)
                return summary

            for source_type in self._source_types:
                try:
                    raw_leads = self._source.fetch(source_type, date, token)
                except UpstreamError as exc:
                    LOGGER.error("Fetching %s leads for %s failed: %s", source_type, date, exc)
                    summary.failed_sources.append(source_type)
                    continue

                try:
                    self._process_into(summary.outcomes, raw_leads, MODE_BY_SOURCE[source_type])
                except LedgerIOError:
                    LOGGER.exception("Ledger write failed; aborting the run")
                    summary.aborted = True
                    break

        LOGGER.info(
            "Run for %s finished: %s created, %s skipped, %s failed",
            date,
            summary.created,
            summary.skipped,
            summary.failed,
        )
        return summary

    def process(self, raw_leads: Iterable[RawLead], mode: str) -> List[LeadOutcome]:
        """Run the per-lead pipeline over ``raw_leads`` in order."""

        outcomes: List[LeadOutcome] = []
        self._process_into(outcomes, raw_leads, mode)
        return outcomes

    def _process_into(self, outcomes: List[LeadOutcome], raw_leads: Iterable[RawLead], mode: str) -> None:
        for raw in raw_leads:
            outcome = LeadOutcome(lead_id=lead_id_of(raw), mode=mode, status=STATUS_FAILED)
            outcomes.append(outcome)
            self._process_lead(raw, mode, outcome)

    def _process_lead(self, raw: RawLead, mode: str, outcome: LeadOutcome) -> None:
        raw_id = outcome.lead_id

        if raw_id and raw_id in self._ledger:
            LOGGER.info("Duplicate lead skipped: %s", raw_id)
            outcome.status = STATUS_SKIPPED
            return

        try:
            lead = self._normalize(raw)
            outcome.stage = STAGE_NORMALIZED
            LOGGER.debug("%s lead data: %s", mode, lead)

            outcome.owner_id = self._owners.resolve(lead)
            outcome.stage = STAGE_OWNER_RESOLVED

            outcome.contact_id = self._contacts.resolve(lead, outcome.owner_id, mode)
            outcome.stage = STAGE_CONTACT_RESOLVED

            fields = self._mapper.map(lead, outcome.owner_id, outcome.contact_id, mode)
            outcome.stage = STAGE_FIELDS_MAPPED
            LOGGER.debug("Deal fields for lead %s: %s", lead.id, fields)

            outcome.deal_id = self._deals.create(fields)
            outcome.stage = STAGE_DEAL_CREATED
            LOGGER.info("New deal %s created for %s lead %s", outcome.deal_id, mode, lead.id)
        except Exception as exc:
            if self._raise_on_error:
                raise
            LOGGER.exception("Lead %s failed after stage %s: %s", raw_id or "<no id>", outcome.stage, exc)
            outcome.error = f"{type(exc).__name__}: {exc}"
            return

        if lead.is_call and self._calls is not None:
            outcome.call_id = self._calls.attach(lead, outcome.deal_id, outcome.owner_id)
            if outcome.call_id:
                outcome.stage = STAGE_CALL_ENRICHED

        outcome.status = STATUS_CREATED
        try:
            self._ledger.record(lead.id)
        except LedgerIOError as exc:
            outcome.error = str(exc)
            if self._strict_ledger:
                raise
            LOGGER.error("%s; continuing with in-memory deduplication", exc)
            return
        outcome.stage = STAGE_RECORDED

"""End-to-end pipeline behaviour against an in-memory CRM."""
from __future__ import annotations

from typing import Dict, List

import logging

import pytest

from conftest import FakeResponse, FakeSession
from lead_bridge.config import CampaignConfig, FieldVocabulary
from lead_bridge.crm import (
    CallRecordingAttacher,
    ContactResolver,
    DealCreator,
    FieldMapper,
    ListingDirectory,
    OwnerResolver,
)
from lead_bridge.errors import LedgerIOError, UpstreamError
from lead_bridge.ledger import ProcessedLedger
from lead_bridge.models import (
    STAGE_FETCHED,
    STAGE_FIELDS_MAPPED,
    STAGE_NORMALIZED,
    STAGE_OWNER_RESOLVED,
    STAGE_RECORDED,
)
from lead_bridge.orchestrator import IngestionOrchestrator

RECORDING_URL = "https://recordings.example/9001.mp3"

EMAIL_LEAD = {
    "id": "L1",
    "first_name": "Omar",
    "last_name": "Haddad",
    "phone": "+971500000001",
    "email": "omar@example.com",
    "notes": [{"body": "Interested, ref: ABC-123, call me"}],
    "user": {"public": {"first_name": "Jane", "last_name": "Doe"}},
}

CALL_LEAD = {
    "id": "9001",
    "phone": "+971500000002",
    "call_start": "2025-03-02 10:00:00",
    "talk_time": "00:01:00",
    "download_url": RECORDING_URL,
    "user": {"public": {"first_name": "Jane", "last_name": "Doe", "phone": "+971500000077"}},
}


class ListSource:
    name = "list"

    def __init__(self, leads: Dict[str, List[dict]], failing: tuple = ()) -> None:
        self.leads = leads
        self.failing = failing
        self.fetched: List[tuple] = []

    def fetch(self, source_type: str, date: str, token: str) -> List[dict]:
        self.fetched.append((source_type, date, token))
        if source_type in self.failing:
            raise UpstreamError(f"{source_type} endpoint down")
        return list(self.leads.get(source_type, []))


def _orchestrator(crm, ledger, source, *, campaign=None, session=None, **kwargs) -> IngestionOrchestrator:
    campaign = campaign or CampaignConfig()
    listings = ListingDirectory(crm, campaign.listing)
    if session is None:
        session = FakeSession()
        session.get_responses[RECORDING_URL] = FakeResponse(content=b"audio")
    return IngestionOrchestrator(
        source,
        ledger,
        OwnerResolver(crm, listings, campaign),
        ContactResolver(crm, brand=campaign.brand),
        FieldMapper(campaign, price_lookup=listings.price),
        DealCreator(crm, lead_id_field=campaign.fields.lead_id),
        CallRecordingAttacher(crm, campaign, session=session),
        **kwargs,
    )


@pytest.fixture()
def ledger(tmp_path) -> ProcessedLedger:
    return ProcessedLedger(tmp_path / "processed_leads.txt")


def test_new_email_lead_creates_deal_and_is_recorded(crm, ledger) -> None:
    crm.listings.append({"ufCrm37ReferenceNumber": "ABC-123", "ufCrm37OwnerId": "42", "ufCrm37Price": "950000"})
    orchestrator = _orchestrator(crm, ledger, ListSource({"email": [EMAIL_LEAD]}), token_provider=lambda: "tok")

    summary = orchestrator.run("2025-03-02")

    assert summary.ok
    assert summary.created == 1
    outcome = summary.outcomes[0]
    assert outcome.stage == STAGE_RECORDED
    assert outcome.owner_id == 42
    deal = crm.deals[0]
    assert outcome.deal_id == deal["ID"]
    assert deal["TITLE"] == "Property Finder - Email - ABC-123"
    assert deal["ASSIGNED_BY_ID"] == 42
    assert deal["OPPORTUNITY"] == "950000"
    assert deal["CONTACT_ID"] == outcome.contact_id
    assert ledger.path.read_text(encoding="utf-8") == "L1\n"
    assert orchestrator._source.fetched == [("call", "2025-03-02", "tok"), ("email", "2025-03-02", "tok")]


def test_lead_already_in_ledger_triggers_no_crm_calls(crm, ledger) -> None:
    ledger.path.write_text("L1\n", encoding="utf-8")
    orchestrator = _orchestrator(crm, ledger, ListSource({"email": [EMAIL_LEAD]}))

    summary = orchestrator.run("2025-03-02")

    assert summary.skipped == 1
    assert summary.created == 0
    assert crm.calls == []


def test_duplicate_within_one_batch_is_processed_once(crm, ledger) -> None:
    orchestrator = _orchestrator(crm, ledger, ListSource({"email": [EMAIL_LEAD, dict(EMAIL_LEAD)]}))

    summary = orchestrator.run("2025-03-02")

    assert [outcome.status for outcome in summary.outcomes] == ["created", "skipped"]
    assert crm.methods().count("crm.deal.add") == 1


def test_email_lead_without_reference_uses_no_reference_title(crm, ledger) -> None:
    raw = {"id": "L9", "email": "anon@example.com", "message": "Please call back"}
    orchestrator = _orchestrator(crm, ledger, ListSource({}))

    outcomes = orchestrator.process([raw], "EMAIL")

    assert outcomes[0].status == "created"
    assert "No reference" in crm.deals[0]["TITLE"]
    assert crm.deals[0]["ASSIGNED_BY_ID"] == 1593
    assert crm.deals[0]["OPPORTUNITY"] == ""


def test_call_lead_with_recording_is_enriched(crm, ledger) -> None:
    crm.users.append({"ID": "12", "NAME": "Jane", "LAST_NAME": "Doe"})
    orchestrator = _orchestrator(crm, ledger, ListSource({"call": [CALL_LEAD]}))

    summary = orchestrator.run("2025-03-02")

    outcome = summary.outcomes[0]
    assert outcome.status == "created"
    assert outcome.call_id == "CALL-1"
    assert crm.deals[0]["SOURCE_ID"] == "UC_L31Q25"
    assert crm.methods()[-3:] == [
        "telephony.externalcall.register",
        "telephony.externalcall.finish",
        "telephony.externalcall.attachRecord",
    ]
    assert crm.params_for("telephony.externalcall.register")[0]["CRM_ENTITY_ID"] == outcome.deal_id
    assert "9001" in ledger


def test_call_lead_without_recording_skips_telephony(crm, ledger) -> None:
    raw = {key: value for key, value in CALL_LEAD.items() if key != "download_url"}
    orchestrator = _orchestrator(crm, ledger, ListSource({"call": [raw]}))

    summary = orchestrator.run("2025-03-02")

    assert summary.created == 1
    assert summary.outcomes[0].call_id is None
    assert not any(method.startswith("telephony.") for method in crm.methods())


def test_failed_enrichment_still_records_lead(crm, ledger) -> None:
    crm.failures["telephony.externalcall.register"] = UpstreamError("telephony disabled")
    orchestrator = _orchestrator(crm, ledger, ListSource({"call": [CALL_LEAD]}))

    summary = orchestrator.run("2025-03-02")

    assert summary.ok
    assert summary.outcomes[0].call_id is None
    assert "9001" in ledger


def test_failing_lead_is_isolated_and_retried_next_run(crm, ledger) -> None:
    failing = dict(EMAIL_LEAD, id="L-bad", phone="+971500000009")
    crm.failures["crm.contact.add"] = UpstreamError("contact rejected")
    crm.contacts.append({"ID": 7, "PHONE": [{"VALUE": "+971500000001"}]})
    orchestrator = _orchestrator(crm, ledger, ListSource({"email": [failing, EMAIL_LEAD]}))

    summary = orchestrator.run("2025-03-02")

    assert [outcome.status for outcome in summary.outcomes] == ["failed", "created"]
    bad = summary.outcomes[0]
    assert bad.stage == STAGE_OWNER_RESOLVED
    assert "contact rejected" in bad.error
    assert "L-bad" not in ledger
    assert "L1" in ledger
    assert not summary.ok


def test_raise_on_error_propagates(crm, ledger) -> None:
    crm.failures["crm.deal.add"] = UpstreamError("deal rejected")
    orchestrator = _orchestrator(crm, ledger, ListSource({"email": [EMAIL_LEAD]}), raise_on_error=True)

    with pytest.raises(UpstreamError):
        orchestrator.run("2025-03-02")

    assert not ledger.lock_path.exists()


def test_malformed_lead_fails_without_stopping_the_batch(crm, ledger) -> None:
    orchestrator = _orchestrator(crm, ledger, ListSource({}))

    outcomes = orchestrator.process([{"email": "x@example.com"}, EMAIL_LEAD], "EMAIL")

    assert [outcome.status for outcome in outcomes] == ["failed", "created"]
    assert "MalformedLeadError" in outcomes[0].error


def test_failed_source_does_not_block_others(crm, ledger) -> None:
    source = ListSource({"email": [EMAIL_LEAD]}, failing=("call",))
    orchestrator = _orchestrator(crm, ledger, source)

    summary = orchestrator.run("2025-03-02")

    assert summary.failed_sources == ["call"]
    assert summary.created == 1
    assert not summary.ok


def test_token_failure_marks_every_source_failed(crm, ledger) -> None:
    def broken_token() -> str:
        raise UpstreamError("auth down")

    source = ListSource({"email": [EMAIL_LEAD]})
    orchestrator = _orchestrator(crm, ledger, source, token_provider=broken_token, source_types=["email", "chat"])

    summary = orchestrator.run("2025-03-02")

    assert summary.failed_sources == ["email", "chat"]
    assert source.fetched == []
    assert crm.calls == []


class BrokenLedger(ProcessedLedger):
    def record(self, lead_id: str) -> None:
        self._seen.add(str(lead_id))
        raise LedgerIOError("disk full")


def test_strict_ledger_failure_aborts_run(crm, tmp_path) -> None:
    ledger = BrokenLedger(tmp_path / "processed_leads.txt")
    second = dict(EMAIL_LEAD, id="L2")
    orchestrator = _orchestrator(crm, ledger, ListSource({"email": [EMAIL_LEAD, second]}))

    summary = orchestrator.run("2025-03-02")

    assert summary.aborted
    assert not summary.ok
    assert len(summary.outcomes) == 1
    assert summary.outcomes[0].status == "created"
    assert summary.outcomes[0].error == "disk full"
    assert crm.methods().count("crm.deal.add") == 1


def test_lenient_ledger_keeps_going_in_memory(crm, tmp_path) -> None:
    ledger = BrokenLedger(tmp_path / "processed_leads.txt")
    leads = [EMAIL_LEAD, dict(EMAIL_LEAD), dict(EMAIL_LEAD, id="L2")]
    orchestrator = _orchestrator(crm, ledger, ListSource({"email": leads}), strict_ledger=False)

    summary = orchestrator.run("2025-03-02")

    assert not summary.aborted
    assert [outcome.status for outcome in summary.outcomes] == ["created", "skipped", "created"]
    assert crm.methods().count("crm.deal.add") == 2


def test_second_run_while_locked_is_refused(crm, ledger) -> None:
    orchestrator = _orchestrator(crm, ledger, ListSource({"email": [EMAIL_LEAD]}))

    with ProcessedLedger(ledger.path).lock():
        with pytest.raises(LedgerIOError):
            orchestrator.run("2025-03-02")

    assert crm.calls == []


def test_existing_deal_for_lead_id_is_not_duplicated(crm, ledger) -> None:
    campaign = CampaignConfig(fields=FieldVocabulary(lead_id="UF_LEAD"))
    crm.deals.append({"ID": 321, "UF_LEAD": "L1"})
    orchestrator = _orchestrator(crm, ledger, ListSource({"email": [EMAIL_LEAD]}), campaign=campaign)

    summary = orchestrator.run("2025-03-02")

    assert summary.outcomes[0].deal_id == 321
    assert "crm.deal.add" not in crm.methods()
    assert "L1" in ledger


def test_deal_failure_reports_last_completed_stage(crm, ledger) -> None:
    crm.failures["crm.deal.add"] = {"error": "INVALID"}
    orchestrator = _orchestrator(crm, ledger, ListSource({}))

    outcome = orchestrator.process([EMAIL_LEAD], "EMAIL")[0]

    assert outcome.status == "failed"
    assert outcome.stage == STAGE_FIELDS_MAPPED
    assert outcome.contact_id is not None


def test_numeric_zero_id_is_deduplicated_across_runs(crm, ledger) -> None:
    zero = dict(EMAIL_LEAD, id=0)

    first = _orchestrator(crm, ledger, ListSource({"email": [zero]})).run("2025-03-02")
    second = _orchestrator(crm, ProcessedLedger(ledger.path), ListSource({"email": [zero]})).run("2025-03-03")

    assert first.outcomes[0].lead_id == "0"
    assert ledger.path.read_text(encoding="utf-8") == "0\n"
    assert [outcome.status for outcome in second.outcomes] == ["skipped"]
    assert crm.methods().count("crm.deal.add") == 1


def test_unexpected_error_reports_last_completed_stage_with_traceback(crm, ledger, monkeypatch, caplog) -> None:
    orchestrator = _orchestrator(crm, ledger, ListSource({}))

    def explode(lead):
        raise KeyError("owner table")

    monkeypatch.setattr(orchestrator._owners, "resolve", explode)

    with caplog.at_level(logging.ERROR, logger="lead_bridge.orchestrator.service"):
        outcome = orchestrator.process([EMAIL_LEAD], "EMAIL")[0]

    assert outcome.status == "failed"
    assert outcome.stage == STAGE_NORMALIZED
    assert outcome.error.startswith("KeyError")
    record = next(record for record in caplog.records if "L1" in record.getMessage())
    assert record.exc_info is not None
    assert crm.calls == []


def test_malformed_lead_stays_at_fetched_stage(crm, ledger) -> None:
    outcome = _orchestrator(crm, ledger, ListSource({})).process([{"id": ""}], "EMAIL")[0]

    assert outcome.stage == STAGE_FETCHED
    assert outcome.status == "failed"

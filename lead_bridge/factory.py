"""Factory helpers for wiring the ingestion pipeline from configuration."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence

import requests

from .config import CampaignConfig, ConfigurationError, iter_enabled_sources
from .crm import (
    CallRecordingAttacher,
    ContactResolver,
    CrmClient,
    DealCreator,
    FieldMapper,
    ListingDirectory,
    OwnerResolver,
)
from .ledger import ProcessedLedger
from .orchestrator import IngestionOrchestrator
from .rate_limit import RateLimiter
from .sources import ApiClientConfig, JsonApiClient, JsonFileSource, PropertyFinderSource, TokenProvider
from .sources.auth import DEFAULT_TOKEN_URL

DEFAULT_LEDGER_PATH = "processed_leads.txt"
DEFAULT_TOKEN_CACHE = "auth_token.json"


def _section(config: Mapping[str, Any], name: str) -> Dict[str, Any]:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"Configuration section '{name}' must be a mapping")
    return section


def _setting(section: Mapping[str, Any], key: str, env_var: str) -> Optional[str]:
    return section.get(key) or os.environ.get(env_var) or None


def _timeout(section: Mapping[str, Any]) -> Optional[float]:
    value = section.get("timeout_seconds", 60)
    return float(value) if value else None


def build_token_provider(config: Mapping[str, Any], *, session: Optional[requests.Session] = None) -> TokenProvider:
    source_cfg = _section(config, "source")
    client_id = _setting(source_cfg, "client_id", "LEAD_BRIDGE_CLIENT_ID")
    client_secret = _setting(source_cfg, "client_secret", "LEAD_BRIDGE_CLIENT_SECRET")
    if not client_id or not client_secret:
        raise ConfigurationError(
            "Source API credentials missing: set source.client_id/client_secret "
            "or LEAD_BRIDGE_CLIENT_ID/LEAD_BRIDGE_CLIENT_SECRET"
        )
    return TokenProvider(
        client_id,
        client_secret,
        source_cfg.get("token_cache", DEFAULT_TOKEN_CACHE),
        token_url=source_cfg.get("token_url", DEFAULT_TOKEN_URL),
        timeout_seconds=_timeout(source_cfg),
        session=session,
    )


def build_source(config: Mapping[str, Any], *, session: Optional[requests.Session] = None) -> PropertyFinderSource:
    source_cfg = _section(config, "source")
    defaults = ApiClientConfig()
    api_config = ApiClientConfig(
        base_url=source_cfg.get("base_url", defaults.base_url),
        timeout_seconds=_timeout(source_cfg),
        extra_headers=dict(source_cfg.get("extra_headers") or defaults.extra_headers),
    )
    return PropertyFinderSource(client=JsonApiClient(api_config, session=session))


def build_crm_client(config: Mapping[str, Any], *, session: Optional[requests.Session] = None) -> CrmClient:
    crm_cfg = _section(config, "crm")
    webhook_url = _setting(crm_cfg, "webhook_url", "LEAD_BRIDGE_CRM_WEBHOOK")
    if not webhook_url:
        raise ConfigurationError("CRM webhook missing: set crm.webhook_url or LEAD_BRIDGE_CRM_WEBHOOK")
    calls_per_minute = crm_cfg.get("rate_limit_per_minute")
    return CrmClient(
        webhook_url,
        rate_limiter=RateLimiter(float(calls_per_minute) if calls_per_minute else None),
        timeout_seconds=_timeout(crm_cfg),
        session=session,
    )


def build_orchestrator(
    config: Mapping[str, Any],
    *,
    input_path: Optional[str | Path] = None,
    ledger_path: Optional[str | Path] = None,
    source_types: Optional[Sequence[str]] = None,
    raise_on_error: bool = False,
    session: Optional[requests.Session] = None,
) -> IngestionOrchestrator:
    """Instantiate the pipeline described by the configuration file."""

    campaign = CampaignConfig.from_mapping(_section(config, "campaign"))
    ledger_cfg = _section(config, "ledger")
    session = session or requests.Session()

    if input_path:
        source = JsonFileSource(input_path)
        token_provider = None
    else:
        source = build_source(config, session=session)
        token_provider = build_token_provider(config, session=session).get_token

    crm = build_crm_client(config, session=session)
    listings = ListingDirectory(crm, campaign.listing)
    types = list(source_types) if source_types else list(iter_enabled_sources(config))

    return IngestionOrchestrator(
        source,
        ProcessedLedger(ledger_path or ledger_cfg.get("path", DEFAULT_LEDGER_PATH)),
        OwnerResolver(crm, listings, campaign),
        ContactResolver(crm, brand=campaign.brand),
        FieldMapper(campaign, price_lookup=listings.price),
        DealCreator(crm, lead_id_field=campaign.fields.lead_id),
        CallRecordingAttacher(crm, campaign, session=session, timeout_seconds=_timeout(_section(config, "crm"))),
        token_provider=token_provider,
        source_types=types,
        raise_on_error=raise_on_error,
        strict_ledger=bool(ledger_cfg.get("strict", True)),
    )

"""Configuration helpers for the lead ingestion pipeline."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .models import MODE_BY_SOURCE, SOURCE_CALL, SOURCE_EMAIL, SOURCE_TYPES

LOGGER = logging.getLogger(__name__)


class ConfigurationError(RuntimeError):
    """Raised when configuration files are missing or malformed."""


_SUPPORTED_EXTENSIONS = {".json", ".yaml", ".yml"}

DEFAULT_SOURCES = (SOURCE_CALL, SOURCE_EMAIL)


def load_configuration(path: str | Path) -> Dict[str, Any]:
    """Load configuration data from a JSON or YAML file."""

    file_path = Path(path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file '{file_path}' was not found")

    if file_path.suffix.lower() not in _SUPPORTED_EXTENSIONS:
        raise ConfigurationError(
            f"Unsupported configuration format '{file_path.suffix}'. Supported extensions: {sorted(_SUPPORTED_EXTENSIONS)}"
        )

    text = file_path.read_text(encoding="utf-8")
    if file_path.suffix.lower() == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Configuration file '{file_path}' is not valid JSON: {exc}") from exc
    else:
        try:
            import yaml  # type: ignore
        except ImportError as exc:  # pragma: no cover - dependency optional
            raise ConfigurationError(
                "YAML configuration requires the 'pyyaml' package to be installed"
            ) from exc

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Configuration file '{file_path}' is not valid YAML: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration file '{file_path}' must contain a mapping at the top level")
    return data


def iter_enabled_sources(config: Mapping[str, Any]) -> Iterable[str]:
    """Yield the source types to ingest, in configured order."""

    sources = (config.get("source") or {}).get("types") or list(DEFAULT_SOURCES)
    for source_type in sources:
        if source_type not in SOURCE_TYPES:
            raise ConfigurationError(
                f"Unknown source type '{source_type}'. Expected one of: {', '.join(SOURCE_TYPES)}"
            )
        yield source_type


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Configuration value '{name}' must be an integer, got {value!r}") from exc


def _as_str_tuple(value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(item) for item in value)


@dataclass(frozen=True, slots=True)
class ListingFields:
    """Where the CRM listing directory keeps the attributes used for ownership."""

    entity_type_id: int = 1084
    reference: str = "ufCrm37ReferenceNumber"
    owner_id: str = "ufCrm37OwnerId"
    owner_name: str = "ufCrm37ListingOwner"
    agent_email: str = "ufCrm37AgentEmail"
    price: Optional[str] = "ufCrm37Price"

    @property
    def select(self) -> List[str]:
        columns = [self.reference, self.agent_email, self.owner_name, self.owner_id]
        if self.price:
            columns.append(self.price)
        return columns

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ListingFields":
        defaults = cls()
        return cls(
            entity_type_id=_as_int(data.get("entity_type_id", defaults.entity_type_id), "listing.entity_type_id"),
            reference=str(data.get("reference", defaults.reference)),
            owner_id=str(data.get("owner_id", defaults.owner_id)),
            owner_name=str(data.get("owner_name", defaults.owner_name)),
            agent_email=str(data.get("agent_email", defaults.agent_email)),
            price=data.get("price", defaults.price) or None,
        )


@dataclass(frozen=True, slots=True)
class FieldVocabulary:
    """Custom deal field ids for one campaign. Unset ids are left out of the payload."""

    reference: Optional[str] = "UF_CRM_1739890146108"
    client_name: Optional[str] = "UF_CRM_1701770331658"
    client_email: Tuple[str, ...] = ("UF_CRM_65732038DAD70", "UF_CRM_1721198325274")
    client_phone: Tuple[str, ...] = ("UF_CRM_PHONE_WORK", "UF_CRM_1736406984")
    enquiry_datetime: Optional[str] = None
    lead_id: Optional[str] = None
    mode: Optional[str] = None
    mode_values: Mapping[str, str] = field(
        default_factory=lambda: {"WHATSAPP": "41290", "EMAIL": "41291", "CALL": "41292"}
    )
    collection_source: Optional[str] = None
    collection_source_values: Mapping[str, str] = field(
        default_factory=lambda: {"CALL": "41308", "EMAIL": "41309", "WHATSAPP": "41310"}
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "FieldVocabulary":
        defaults = cls()
        return cls(
            reference=data.get("reference", defaults.reference),
            client_name=data.get("client_name", defaults.client_name),
            client_email=_as_str_tuple(data.get("client_email", defaults.client_email)),
            client_phone=_as_str_tuple(data.get("client_phone", defaults.client_phone)),
            enquiry_datetime=data.get("enquiry_datetime", defaults.enquiry_datetime),
            lead_id=data.get("lead_id", defaults.lead_id),
            mode=data.get("mode", defaults.mode),
            mode_values=dict(data.get("mode_values", defaults.mode_values)),
            collection_source=data.get("collection_source", defaults.collection_source),
            collection_source_values=dict(data.get("collection_source_values", defaults.collection_source_values)),
        )


@dataclass(frozen=True, slots=True)
class CampaignConfig:
    """Everything that differs between campaign deployments of the same pipeline."""

    brand: str = "Property Finder"
    default_owner_id: int = 1593
    disabled_user_ids: Tuple[int, ...] = (3, 268)
    remapped_owner_ids: Mapping[int, int] = field(default_factory=dict)
    resolve_by_agent_phone: bool = False
    category_id: Optional[int] = 24
    source_ids: Mapping[str, str] = field(
        default_factory=lambda: {"CALL": "UC_L31Q25", "EMAIL": "RC_GENERATOR", "WHATSAPP": "RC_GENERATOR"}
    )
    call_crm_source: int = 41
    call_line_prefix: str = "PF"
    listing: ListingFields = field(default_factory=ListingFields)
    fields: FieldVocabulary = field(default_factory=FieldVocabulary)

    def source_id_for(self, mode: str) -> Optional[str]:
        return self.source_ids.get(mode) or self.source_ids.get("EMAIL")

    def remap_owner(self, owner_id: int) -> int:
        return self.remapped_owner_ids.get(owner_id, owner_id)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "CampaignConfig":
        data = data or {}
        defaults = cls()
        unknown_modes = set(data.get("source_ids", {})) - set(MODE_BY_SOURCE.values())
        if unknown_modes:
            raise ConfigurationError(f"Unknown modes in campaign.source_ids: {sorted(unknown_modes)}")

        category = data.get("category_id", defaults.category_id)
        return cls(
            brand=str(data.get("brand", defaults.brand)),
            default_owner_id=_as_int(data.get("default_owner_id", defaults.default_owner_id), "campaign.default_owner_id"),
            disabled_user_ids=tuple(
                _as_int(value, "campaign.disabled_user_ids")
                for value in data.get("disabled_user_ids", defaults.disabled_user_ids)
            ),
            remapped_owner_ids={
                _as_int(key, "campaign.remapped_owner_ids"): _as_int(value, "campaign.remapped_owner_ids")
                for key, value in (data.get("remapped_owner_ids") or {}).items()
            },
            resolve_by_agent_phone=bool(data.get("resolve_by_agent_phone", defaults.resolve_by_agent_phone)),
            category_id=_as_int(category, "campaign.category_id") if category is not None else None,
            source_ids={**defaults.source_ids, **(data.get("source_ids") or {})},
            call_crm_source=_as_int(data.get("call_crm_source", defaults.call_crm_source), "campaign.call_crm_source"),
            call_line_prefix=str(data.get("call_line_prefix", defaults.call_line_prefix)),
            listing=ListingFields.from_mapping(data.get("listing") or {}),
            fields=FieldVocabulary.from_mapping(data.get("fields") or {}),
        )

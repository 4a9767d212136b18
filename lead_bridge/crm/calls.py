"""Register call-tracking leads as CRM telephony calls with their recording."""
from __future__ import annotations

import base64
import logging
import uuid
from typing import Any, Dict, Optional

import requests

from ..config import CampaignConfig
from ..errors import UpstreamError
from ..models import LeadData
from .client import CrmProtocol, result_of

LOGGER = logging.getLogger(__name__)

CALL_TYPE_INCOMING = 2
STATUS_CODE_SUCCESS = 200


def duration_seconds(value: str) -> int:
    """Convert ``HH:MM:SS``, ``MM:SS`` or a plain number of seconds to seconds."""

    if not value:
        return 0
    parts = value.strip().split(":")
    try:
        numbers = [int(float(part)) for part in parts]
    except ValueError:
        return 0
    seconds = 0
    for number in numbers:
        seconds = seconds * 60 + number
    return seconds


def recording_filename(lead_id: str) -> str:
    return f"{lead_id}|call{uuid.uuid4().hex}.mp3"


class CallRecordingAttacher:
    """Register, finish and attach the recording of a call lead.

    Enrichment is best effort: any failure is logged and ``None`` returned,
    since the deal has already been created at this point.
    """

    def __init__(
        self,
        crm: CrmProtocol,
        campaign: Optional[CampaignConfig] = None,
        *,
        session: Optional[requests.Session] = None,
        timeout_seconds: Optional[float] = 60.0,
    ) -> None:
        self._crm = crm
        self._campaign = campaign or CampaignConfig()
        self._session = session or requests.Session()
        self._timeout = timeout_seconds

    def attach(self, lead: LeadData, deal_id: int, owner_id: int) -> Optional[str]:
        call = lead.call
        if call is None or not call.has_recording:
            return None

        content = self.download(call.recording_url)
        if content is None:
            return None

        try:
            call_id = self.register(lead, deal_id, owner_id)
            if not call_id:
                LOGGER.warning("Call registration for lead %s returned no CALL_ID", lead.id)
                return None
            self._invoke(
                "telephony.externalcall.finish",
                {
                    "CALL_ID": call_id,
                    "USER_ID": owner_id,
                    "DURATION": duration_seconds(call.talk_time),
                    "STATUS_CODE": STATUS_CODE_SUCCESS,
                },
            )
            self._invoke(
                "telephony.externalcall.attachRecord",
                {
                    "CALL_ID": call_id,
                    "FILENAME": recording_filename(lead.id),
                    "FILE_CONTENT": base64.b64encode(content).decode("ascii"),
                },
            )
        except UpstreamError as exc:
            LOGGER.error("Call enrichment failed for lead %s (deal %s): %s", lead.id, deal_id, exc)
            return None

        LOGGER.info("Attached call recording %s to deal %s", call_id, deal_id)
        return call_id

    def download(self, url: str) -> Optional[bytes]:
        try:
            response = self._session.get(url, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            LOGGER.error("Could not download call recording %s: %s", url, exc)
            return None
        return response.content

    def register(self, lead: LeadData, deal_id: int, owner_id: int) -> Optional[str]:
        agent_phone = lead.agent_phone or ""
        result = self._invoke(
            "telephony.externalcall.register",
            {
                "USER_PHONE_INNER": agent_phone,
                "USER_ID": owner_id,
                "PHONE_NUMBER": lead.client_phone,
                "CALL_START_DATE": lead.call.call_start if lead.call else "",
                "CRM_CREATE": 0,
                "CRM_SOURCE": self._campaign.call_crm_source,
                "CRM_ENTITY_TYPE": "DEAL",
                "CRM_ENTITY_ID": deal_id,
                "SHOW": 0,
                "TYPE": CALL_TYPE_INCOMING,
                "LINE_NUMBER": f"{self._campaign.call_line_prefix} {agent_phone}",
            },
        )
        if isinstance(result, dict) and result.get("CALL_ID"):
            return str(result["CALL_ID"])
        return None

    def _invoke(self, method: str, params: Dict[str, Any]) -> Any:
        return result_of(self._crm.call(method, params), method)

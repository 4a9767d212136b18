"""Shared fakes for the CRM webhook API and HTTP sessions."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Tuple

import pytest
import requests


def _multifield_values(values: Any) -> List[str]:
    if isinstance(values, list):
        return [str(item.get("VALUE", "")) for item in values if isinstance(item, dict)]
    return []


class FakeCrm:
    """In-memory stand-in for the CRM that records every call it receives."""

    def __init__(self) -> None:
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.listings: List[Dict[str, Any]] = []
        self.users: List[Dict[str, Any]] = []
        self.contacts: List[Dict[str, Any]] = []
        self.deals: List[Dict[str, Any]] = []
        self.failures: Dict[str, Any] = {}
        self.call_id: Optional[str] = "CALL-1"
        self._next_id = 500

    # -- helpers used by tests -------------------------------------------
    def methods(self) -> List[str]:
        return [method for method, _ in self.calls]

    def params_for(self, method: str) -> List[Dict[str, Any]]:
        return [params for called, params in self.calls if called == method]

    def writes(self) -> List[str]:
        write_methods = {
            "crm.deal.add",
            "crm.contact.add",
            "telephony.externalcall.register",
            "telephony.externalcall.finish",
            "telephony.externalcall.attachRecord",
        }
        return [method for method in self.methods() if method in write_methods]

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    # -- CrmProtocol -----------------------------------------------------
    def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        params = dict(params or {})
        self.calls.append((method, params))
        failure = self.failures.get(method)
        if isinstance(failure, Exception):
            raise failure
        if failure is not None:
            return failure
        handler = getattr(self, "_" + method.replace(".", "_"))
        return handler(params)

    def _crm_item_list(self, params: Dict[str, Any]) -> Dict[str, Any]:
        items = [
            listing
            for listing in self.listings
            if all(listing.get(key) == value for key, value in params.get("filter", {}).items())
        ]
        return {"result": {"items": items}, "total": len(items)}

    def _user_get(self, params: Dict[str, Any]) -> Dict[str, Any]:
        users = [user for user in self.users if _user_matches(user, params.get("filter", {}))]
        return {"result": users, "total": len(users)}

    def _crm_contact_list(self, params: Dict[str, Any]) -> Dict[str, Any]:
        matches = []
        for contact in self.contacts:
            ok = True
            for key, value in params.get("filter", {}).items():
                if value not in _multifield_values(contact.get(key)):
                    ok = False
            if ok:
                matches.append({"ID": str(contact["ID"])})
        return {"result": matches, "total": len(matches)}

    def _crm_contact_add(self, params: Dict[str, Any]) -> Dict[str, Any]:
        contact = dict(params["fields"], ID=self._new_id())
        self.contacts.append(contact)
        return {"result": contact["ID"]}

    def _crm_deal_add(self, params: Dict[str, Any]) -> Dict[str, Any]:
        deal = dict(params["fields"], ID=self._new_id())
        self.deals.append(deal)
        return {"result": deal["ID"]}

    def _crm_deal_list(self, params: Dict[str, Any]) -> Dict[str, Any]:
        matches = [
            {"ID": str(deal["ID"])}
            for deal in self.deals
            if all(deal.get(key) == value for key, value in params.get("filter", {}).items())
        ]
        return {"result": matches, "total": len(matches)}

    def _telephony_externalcall_register(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.call_id:
            return {"result": {"CALL_ID": self.call_id, "CRM_ENTITY_ID": params.get("CRM_ENTITY_ID")}}
        return {"result": {}}

    def _telephony_externalcall_finish(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"result": {"CALL_ID": params["CALL_ID"]}}

    def _telephony_externalcall_attachRecord(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"result": {"FILE_ID": 1}}


def _user_matches(user: Dict[str, Any], user_filter: Dict[str, Any]) -> bool:
    for key, value in user_filter.items():
        if key == "!ID":
            excluded = value if isinstance(value, list) else [value]
            if int(user["ID"]) in {int(item) for item in excluded}:
                return False
        elif key.startswith("%"):
            if not str(user.get(key[1:]) or "").lower().startswith(str(value).lower()):
                return False
        elif str(user.get(key) or "") != str(value):
            return False
    return True


@pytest.fixture()
def crm() -> FakeCrm:
    return FakeCrm()


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, content: Optional[bytes] = None) -> None:
        self.status_code = status_code
        self._payload = payload
        if content is None:
            content = b"" if payload is None else json.dumps(payload).encode("utf-8")
        self.content = content
        self.text = content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.content.decode("utf-8"))

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}", response=self)  # type: ignore[arg-type]


class FakeSession:
    """Routes webhook POSTs to a :class:`FakeCrm` and serves canned GET responses."""

    def __init__(self, crm: Optional[FakeCrm] = None) -> None:
        self.crm = crm
        self.get_responses: Dict[str, Any] = {}
        self.post_responses: Dict[str, Any] = {}
        self.requests: List[Tuple[str, str, Dict[str, Any]]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append(("GET", url, kwargs))
        return self._reply(self.get_responses, url)

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append(("POST", url, kwargs))
        if url in self.post_responses or self.crm is None:
            return self._reply(self.post_responses, url)
        method = url.rsplit("/", 1)[-1][: -len(".json")]
        return FakeResponse(payload=self.crm.call(method, kwargs.get("json")))

    @staticmethod
    def _reply(responses: Dict[str, Any], url: str) -> FakeResponse:
        reply = responses.get(url)
        if reply is None:
            return FakeResponse(status_code=404, content=b"not found")
        if isinstance(reply, Exception):
            raise reply
        return reply


@pytest.fixture()
def session(crm: FakeCrm) -> FakeSession:
    return FakeSession(crm)

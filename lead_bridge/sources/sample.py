"""Source that replays provider responses saved to a local JSON file."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List

from ..errors import UpstreamError
from ..models import RawLead
from .property_finder import ENDPOINTS, unwrap_envelope

LOGGER = logging.getLogger(__name__)


class JsonFileSource:
    """Serve raw leads from a file shaped like the provider envelopes.

    The file holds one object with any of the ``leads``, ``call_trackings`` and
    ``whatsapp`` keys. Dates are not filtered; the file is the day's snapshot.
    """

    name = "json_file"

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._payload: Any = None

    def _load(self) -> Any:
        if self._payload is None:
            try:
                self._payload = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as exc:
                raise UpstreamError(f"Unable to read leads from '{self.path}': {exc}", target=str(self.path)) from exc
        return self._payload

    def fetch(self, source_type: str, date: str, token: str) -> List[RawLead]:
        records = unwrap_envelope(self._load(), ENDPOINTS[source_type].envelope)
        LOGGER.info("Loaded %s %s leads from %s", len(records), source_type, self.path)
        return records

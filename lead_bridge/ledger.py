"""Append-only ledger of lead identifiers that already reached the CRM."""
from __future__ import annotations

import contextlib
import logging
import os
from pathlib import Path
from typing import Iterator, List, Set

from .errors import LedgerIOError

LOGGER = logging.getLogger(__name__)


class ProcessedLedger:
    """Newline-delimited file of processed lead ids, mirrored in memory.

    The in-memory set is updated even when the append fails so that the same
    run never submits a lead twice.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._entries: List[str] = []
        self._seen: Set[str] = set()

    @property
    def entries(self) -> List[str]:
        return list(self._entries)

    def __contains__(self, lead_id: object) -> bool:
        return str(lead_id) in self._seen

    def __len__(self) -> int:
        return len(self._entries)

    def load(self) -> "ProcessedLedger":
        """Read every recorded id from disk. A missing file is an empty ledger."""

        if not self.path.exists():
            LOGGER.info("Ledger %s does not exist yet; starting empty", self.path)
            return self
        try:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise LedgerIOError(f"Unable to read ledger '{self.path}': {exc}") from exc

        for line in lines:
            lead_id = line.strip()
            if lead_id and lead_id not in self._seen:
                self._seen.add(lead_id)
                self._entries.append(lead_id)
        LOGGER.info("Loaded %s processed lead ids from %s", len(self._entries), self.path)
        return self

    def record(self, lead_id: str) -> None:
        """Append ``lead_id`` to the ledger file."""

        lead_id = str(lead_id)
        if lead_id in self._seen:
            return
        self._seen.add(lead_id)
        self._entries.append(lead_id)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(lead_id + "\n")
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as exc:
            raise LedgerIOError(f"Failed to write lead id {lead_id} to '{self.path}': {exc}") from exc
        LOGGER.debug("Recorded lead %s in %s", lead_id, self.path)

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    @contextlib.contextmanager
    def lock(self) -> Iterator[None]:
        """Hold an exclusive lock file so two runs never share the ledger."""

        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError as exc:
            raise LedgerIOError(
                f"Another run holds '{self.lock_path}'. Remove it if no ingestion is running."
            ) from exc
        except OSError as exc:
            raise LedgerIOError(f"Unable to create lock file '{self.lock_path}': {exc}") from exc

        try:
            os.write(fd, str(os.getpid()).encode("ascii"))
        finally:
            os.close(fd)
        try:
            yield
        finally:
            with contextlib.suppress(FileNotFoundError):
                self.lock_path.unlink()

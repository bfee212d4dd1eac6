"""File-backed credential store.

CredentialStore owns the identity → IdentityCredentialRecord mapping and its
JSON file. It is constructed once at process start and handed to every
component that needs it; there is no module-level store instance.

Failure policy:
  - load(): missing file → empty store; unreadable or malformed file →
    logged, empty store. Never raises.
  - save(): I/O failure is logged and reported as False. The in-memory
    mapping is left as the caller mutated it.

Writes go through a temp file in the same directory followed by os.replace(),
so a crash mid-write leaves the previous file intact. The file is chmod 0600
after every write.

Mutations are synchronous: a caller on the event loop runs memory update +
save() to completion before yielding, so no locking is needed.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Iterator, Optional, Union

from keygate.constants import DEFAULT_STORE_PATH, STORE_FILE_MODE, STORE_JSON_INDENT
from keygate.credentials.errors import MalformedStateError, PersistenceError
from keygate.credentials.models import CredentialOwner, IdentityCredentialRecord
from keygate.utils.logger import get_logger

logger = get_logger(__name__)


class CredentialStore:
    """Durable mapping of identity id → IdentityCredentialRecord.

    Iteration order is insertion order of identities, then issuance order
    within each record; find_owner() and list operations rely on it.
    """

    def __init__(self, path: Union[str, Path, None] = None) -> None:
        self._path = Path(path) if path is not None else Path(DEFAULT_STORE_PATH)
        self._records: dict[str, IdentityCredentialRecord] = {}

    @property
    def path(self) -> Path:
        return self._path

    # ─── Persistence ──────────────────────────────────────────────────────

    def load(self) -> None:
        """Replace the in-memory mapping with the file contents.

        Never raises: any failure resets the store to empty and is logged.
        """
        self._records = {}

        if not self._path.exists():
            logger.info("Credential file not found — starting empty", path=str(self._path))
            return

        try:
            records, repaired = self._read()
        except (PersistenceError, MalformedStateError) as exc:
            logger.error(
                "Failed to load credential file — starting empty",
                path=str(self._path),
                error=str(exc),
            )
            return

        self._records = records
        if repaired:
            logger.warning(
                "Repaired malformed entries in credential file",
                path=str(self._path),
                repaired=repaired,
            )
        logger.info(
            "Credential store loaded",
            path=str(self._path),
            identities=len(self._records),
            credentials=self.credential_count(),
        )

    def _read(self) -> tuple[dict[str, IdentityCredentialRecord], int]:
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Could not read {self._path}: {exc}") from exc

        try:
            raw = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedStateError(f"Invalid JSON: {exc}") from exc
        if not isinstance(raw, dict):
            raise MalformedStateError("top level is not a JSON object")

        records: dict[str, IdentityCredentialRecord] = {}
        repaired = 0
        for identity_id, raw_record in raw.items():
            try:
                record, dropped = IdentityCredentialRecord.from_dict(raw_record, identity_id)
            except MalformedStateError as exc:
                logger.warning(
                    "Dropping malformed credential record",
                    identity_id=identity_id,
                    error=str(exc),
                )
                repaired += 1
                continue
            repaired += dropped
            if raw_record.get("count") != record.count:
                logger.warning(
                    "Credential count out of sync — recomputed",
                    identity_id=identity_id,
                    stored=raw_record.get("count"),
                    actual=record.count,
                )
                repaired += 1
            records[identity_id] = record
        return records, repaired

    def save(self) -> bool:
        """Write the whole mapping to disk, replacing the previous file.

        Returns:
            True on success, False if the write failed (already logged).
        """
        try:
            self._write()
        except PersistenceError as exc:
            logger.error("Failed to save credential file", path=str(self._path), error=str(exc))
            return False
        logger.debug("Credential file saved", path=str(self._path), identities=len(self._records))
        return True

    def _write(self) -> None:
        payload = json.dumps(self.to_dict(), indent=STORE_JSON_INDENT)
        directory = self._path.parent
        tmp_name: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=str(directory), prefix=f".{self._path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
            os.chmod(tmp_name, STORE_FILE_MODE)
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as exc:
            raise PersistenceError(f"Could not write {self._path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def to_dict(self) -> dict:
        """Persisted form of the whole store."""
        return {identity_id: record.to_dict() for identity_id, record in self._records.items()}

    # ─── Record primitives ────────────────────────────────────────────────

    def get_record(self, identity_id: str) -> Optional[IdentityCredentialRecord]:
        """Return the identity's record, or None. Never creates one."""
        return self._records.get(identity_id)

    def upsert_record(self, identity_id: str, record: IdentityCredentialRecord) -> None:
        """Create or replace the record for ``identity_id``."""
        self._records[identity_id] = record

    def delete_record(self, identity_id: str) -> Optional[IdentityCredentialRecord]:
        """Remove the identity's record entirely; returns it, or None if absent."""
        return self._records.pop(identity_id, None)

    def find_owner(self, value: str) -> Optional[CredentialOwner]:
        """Linear scan for the credential ``value``. First match wins."""
        if not value:
            return None
        for identity_id, record in self._records.items():
            credential = record.find(value)
            if credential is not None:
                return CredentialOwner(identity_id=identity_id, credential=credential)
        return None

    def records(self) -> Iterator[tuple[str, IdentityCredentialRecord]]:
        """Iterate (identity_id, record) in insertion order."""
        return iter(list(self._records.items()))

    def credential_count(self) -> int:
        return sum(record.count for record in self._records.values())

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, identity_id: object) -> bool:
        return identity_id in self._records

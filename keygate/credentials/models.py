"""Credential data contracts.

Credential and IdentityCredentialRecord mirror the persisted JSON layout:

    {"<identity>": {"count": 1, "keys": [
        {"key": "Apikey-...", "createdAt": "2026-01-01T00:00:00.000Z",
         "username": "alice", "addedBy": "<owner>", "reason": "..."}]}}

Both types validate on the way in (from_dict) and repair what can be
repaired: a record's count is recomputed from its keys, a credential with an
unreadable createdAt gets the load time. Entries that cannot be repaired raise
MalformedStateError so the store can drop them.

Timestamps are UTC and carry millisecond precision, matching what the file
can hold, so a save/load cycle reproduces them exactly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from keygate.credentials.errors import MalformedStateError


def utc_now() -> datetime:
    """Current UTC time truncated to milliseconds."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with milliseconds and a 'Z' suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_timestamp(raw: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC.

    Raises:
        ValueError: If ``raw`` is not a valid ISO-8601 string.
    """
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ─── Credential ───────────────────────────────────────────────────────────────


@dataclass
class Credential:
    """A single issued credential.

    owner_identity_id and owner_display_name are captured at issuance and
    never refreshed. issued_by_identity_id and issue_reason are only set for
    administrator issuance.
    """

    value: str
    issued_at: datetime
    owner_identity_id: str
    owner_display_name: str
    issued_by_identity_id: Optional[str] = None
    issue_reason: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "key": self.value,
            "createdAt": format_timestamp(self.issued_at),
            "username": self.owner_display_name,
        }
        if self.issued_by_identity_id is not None:
            data["addedBy"] = self.issued_by_identity_id
        if self.issue_reason is not None:
            data["reason"] = self.issue_reason
        return data

    @classmethod
    def from_dict(cls, raw: Any, identity_id: str) -> "Credential":
        """Build a Credential from one entry of a record's ``keys`` list.

        Raises:
            MalformedStateError: If the entry is not an object or has no string key.
        """
        if not isinstance(raw, dict):
            raise MalformedStateError(f"credential entry is not an object: {type(raw).__name__}")
        value = raw.get("key")
        if not isinstance(value, str) or not value:
            raise MalformedStateError("credential entry has no 'key'")

        created_raw = raw.get("createdAt")
        try:
            issued_at = parse_timestamp(created_raw) if isinstance(created_raw, str) else None
        except ValueError:
            issued_at = None
        if issued_at is None:
            issued_at = utc_now()

        username = raw.get("username")
        added_by = raw.get("addedBy")
        reason = raw.get("reason")
        return cls(
            value=value,
            issued_at=issued_at,
            owner_identity_id=identity_id,
            owner_display_name=str(username) if username is not None else "",
            issued_by_identity_id=str(added_by) if added_by is not None else None,
            issue_reason=str(reason) if reason is not None else None,
        )


# ─── IdentityCredentialRecord ─────────────────────────────────────────────────


@dataclass
class IdentityCredentialRecord:
    """All live credentials of one identity, in issuance order.

    ``count`` is kept alongside ``credentials`` and must always equal its
    length; mutate through append()/remove() only.
    """

    credentials: list[Credential] = field(default_factory=list)
    count: int = 0

    def append(self, credential: Credential) -> None:
        self.credentials.append(credential)
        self.count = len(self.credentials)

    def remove(self, value: str) -> Optional[Credential]:
        """Remove the first credential with ``value``; returns it or None."""
        for index, credential in enumerate(self.credentials):
            if credential.value == value:
                del self.credentials[index]
                self.count = len(self.credentials)
                return credential
        return None

    def find(self, value: str) -> Optional[Credential]:
        for credential in self.credentials:
            if credential.value == value:
                return credential
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "keys": [credential.to_dict() for credential in self.credentials],
        }

    @classmethod
    def from_dict(cls, raw: Any, identity_id: str) -> tuple["IdentityCredentialRecord", int]:
        """Build a record from its persisted form.

        Returns:
            (record, dropped) — dropped is the number of credential entries
            discarded as malformed. ``count`` is recomputed from the survivors.

        Raises:
            MalformedStateError: If ``raw`` is not an object or ``keys`` is not a list.
        """
        if not isinstance(raw, dict):
            raise MalformedStateError(f"record is not an object: {type(raw).__name__}")
        keys = raw.get("keys", [])
        if not isinstance(keys, list):
            raise MalformedStateError("record 'keys' is not a list")

        record = cls()
        dropped = 0
        for entry in keys:
            try:
                record.append(Credential.from_dict(entry, identity_id))
            except MalformedStateError:
                dropped += 1
        return record, dropped


# ─── Read models ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CredentialOwner:
    """Result of a value → owner lookup."""

    identity_id: str
    credential: Credential


@dataclass(frozen=True)
class CredentialStatus:
    """Answer to a status query. Owner fields are None when not found."""

    found: bool
    owner_identity_id: Optional[str] = None
    owner_display_name: Optional[str] = None
    issued_at: Optional[datetime] = None


@dataclass(frozen=True)
class CredentialListing:
    """One row of the flattened, store-wide credential listing."""

    identity_id: str
    display_name: str
    value: str
    issued_at: datetime

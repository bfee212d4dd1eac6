"""Per-identity credential quota."""

from __future__ import annotations

from typing import Optional

from keygate.constants import MAX_CREDENTIALS_PER_IDENTITY
from keygate.credentials.models import IdentityCredentialRecord


class QuotaPolicy:
    """Caps the number of live credentials an identity may hold.

    The same limit applies to self-service and administrator issuance.
    Records that already exceed it (hand-edited files) are left alone; they
    simply cannot receive more.
    """

    def __init__(self, max_credentials: int = MAX_CREDENTIALS_PER_IDENTITY) -> None:
        self.max_credentials = max_credentials

    def can_issue(self, record: Optional[IdentityCredentialRecord]) -> bool:
        return record is None or record.count < self.max_credentials

    def remaining(self, record: Optional[IdentityCredentialRecord]) -> int:
        held = record.count if record is not None else 0
        return max(self.max_credentials - held, 0)

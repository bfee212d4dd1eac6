"""AccessGate: allow/deny decision for a presented credential.

A credential is accepted when it equals the configured master key or when
the shared CredentialStore knows it. The gate never mutates the store, so it
is safe to call between any two lifecycle operations.
"""

from __future__ import annotations

import enum
import hmac
from typing import Optional

from keygate.credentials.store import CredentialStore


class AccessDecision(str, enum.Enum):
    """Outcome of AccessGate.authorize().

    MISSING_CREDENTIAL and INVALID_CREDENTIAL are kept apart so callers can
    render them differently.
    """

    ALLOW = "allow"
    MISSING_CREDENTIAL = "missing_credential"
    INVALID_CREDENTIAL = "invalid_credential"

    @property
    def allowed(self) -> bool:
        return self is AccessDecision.ALLOW


class AccessGate:
    """Validates inbound credentials against the master key and the store."""

    def __init__(self, store: CredentialStore, master_key: Optional[str] = None) -> None:
        self.store = store
        self._master_key = master_key or ""

    def authorize(self, presented: Optional[str]) -> AccessDecision:
        if not presented:
            return AccessDecision.MISSING_CREDENTIAL

        if self._master_key and hmac.compare_digest(
            presented.encode("utf-8"), self._master_key.encode("utf-8")
        ):
            return AccessDecision.ALLOW

        if self.store.find_owner(presented) is not None:
            return AccessDecision.ALLOW

        return AccessDecision.INVALID_CREDENTIAL

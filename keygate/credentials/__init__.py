"""KeyGate credential subsystem.

Public API:
  - CredentialStore             — file-backed identity → record mapping
  - QuotaPolicy                 — max credentials per identity (3)
  - CredentialLifecycleManager  — issue / revoke / revoke-all / status / listing
  - Credential, IdentityCredentialRecord, CredentialOwner, CredentialStatus,
    CredentialListing           — data contracts
  - QuotaExceededError, CredentialNotFoundError, PersistenceError,
    MalformedStateError         — error taxonomy
"""

from __future__ import annotations

from keygate.credentials.errors import (
    CredentialError,
    CredentialNotFoundError,
    MalformedStateError,
    PersistenceError,
    QuotaExceededError,
)
from keygate.credentials.generator import generate_credential_value
from keygate.credentials.lifecycle import CredentialLifecycleManager
from keygate.credentials.models import (
    Credential,
    CredentialListing,
    CredentialOwner,
    CredentialStatus,
    IdentityCredentialRecord,
)
from keygate.credentials.quota import QuotaPolicy
from keygate.credentials.store import CredentialStore

__all__ = [
    "CredentialError",
    "CredentialNotFoundError",
    "MalformedStateError",
    "PersistenceError",
    "QuotaExceededError",
    "generate_credential_value",
    "CredentialLifecycleManager",
    "Credential",
    "CredentialListing",
    "CredentialOwner",
    "CredentialStatus",
    "IdentityCredentialRecord",
    "QuotaPolicy",
    "CredentialStore",
]

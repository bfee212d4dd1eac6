"""Credential subsystem exceptions.

None of these terminate the process. QuotaExceededError and
CredentialNotFoundError (raised by the owner remove command) are user-facing
outcomes; PersistenceError and MalformedStateError are logged by the store
and recovered from.
"""

from __future__ import annotations

from keygate.constants import MAX_CREDENTIALS_PER_IDENTITY


class CredentialError(Exception):
    """Base class for credential subsystem errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class QuotaExceededError(CredentialError):
    """Raised when an identity already holds the maximum number of credentials.

    Recoverable: revoke an existing credential first.
    """

    def __init__(self, identity_id: str, limit: int = MAX_CREDENTIALS_PER_IDENTITY) -> None:
        super().__init__(
            f"Maximum credentials ({limit}) reached for identity {identity_id}. "
            "Revoke an existing credential before issuing a new one."
        )
        self.identity_id = identity_id
        self.limit = limit


class CredentialNotFoundError(CredentialError):
    """Raised by callers that treat an absent credential as an error."""

    def __init__(self, message: str = "Credential not found") -> None:
        super().__init__(message)


class PersistenceError(CredentialError):
    """Disk read/write failure for the credential file or the config file."""


class MalformedStateError(CredentialError):
    """The persisted credential file could not be interpreted."""

"""Credential lifecycle: issue, revoke, bulk revoke, status and listing.

CredentialLifecycleManager orchestrates CredentialStore + QuotaPolicy. Every
mutation updates memory and then calls store.save() before returning. A
failed save is logged by the store and does not undo the in-memory change.

Per-credential state machine: nonexistent → active → revoked (terminal).
There is no time-based expiry.
"""

from __future__ import annotations

from typing import Optional

from keygate.constants import DEFAULT_ISSUE_REASON
from keygate.credentials.errors import QuotaExceededError
from keygate.credentials.generator import generate_credential_value
from keygate.credentials.models import (
    Credential,
    CredentialListing,
    CredentialStatus,
    IdentityCredentialRecord,
    format_timestamp,
    utc_now,
)
from keygate.credentials.quota import QuotaPolicy
from keygate.credentials.store import CredentialStore
from keygate.notify import Notifier, NullNotifier, dispatch_notification
from keygate.utils.logger import get_logger, mask_credential

logger = get_logger(__name__)


class CredentialLifecycleManager:
    """Issuance and revocation front for a shared CredentialStore."""

    def __init__(
        self,
        store: CredentialStore,
        quota: Optional[QuotaPolicy] = None,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self.store = store
        self.quota = quota or QuotaPolicy()
        self.notifier: Notifier = notifier or NullNotifier()

    # ─── Mutations ────────────────────────────────────────────────────────

    def issue(
        self,
        identity_id: str,
        display_name: str,
        on_behalf_of: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Credential:
        """Issue a new credential to ``identity_id``.

        Args:
            identity_id:   Owner of the new credential.
            display_name:  Owner's display name, captured as of now.
            on_behalf_of:  Administrator identity when issuing for someone else.
            reason:        Administrator annotation; defaults to
                           "No reason provided" when on_behalf_of is set.
                           Ignored for self-service issuance.

        Returns:
            The new Credential. The owner is also notified (best-effort).

        Raises:
            QuotaExceededError: The identity already holds the maximum.
                                The store is left unchanged.
        """
        record = self.store.get_record(identity_id)
        if not self.quota.can_issue(record):
            logger.info(
                "Credential issuance refused — quota reached",
                identity_id=identity_id,
                limit=self.quota.max_credentials,
                admin=on_behalf_of,
            )
            raise QuotaExceededError(identity_id, self.quota.max_credentials)

        credential = Credential(
            value=generate_credential_value(),
            issued_at=utc_now(),
            owner_identity_id=identity_id,
            owner_display_name=display_name,
        )
        if on_behalf_of is not None:
            credential.issued_by_identity_id = on_behalf_of
            credential.issue_reason = reason or DEFAULT_ISSUE_REASON

        if record is None:
            record = IdentityCredentialRecord()
            self.store.upsert_record(identity_id, record)
        record.append(credential)
        self.store.save()

        logger.info(
            "Credential issued",
            identity_id=identity_id,
            credential=mask_credential(credential.value),
            count=record.count,
            admin=on_behalf_of,
        )

        dispatch_notification(self.notifier, identity_id, _issued_message(credential))
        return credential

    def revoke(self, value: str) -> bool:
        """Revoke the credential ``value``.

        Returns:
            True if it was found and removed, False otherwise. Absence is a
            normal outcome: no mutation, no save, no error.
        """
        owner = self.store.find_owner(value)
        if owner is None:
            logger.debug("revoke: no matching credential", credential=mask_credential(value))
            return False

        record = self.store.get_record(owner.identity_id)
        if record is None or record.remove(value) is None:
            return False
        self.store.save()

        logger.info(
            "Credential revoked",
            identity_id=owner.identity_id,
            credential=mask_credential(value),
            remaining=record.count,
        )
        return True

    def revoke_all_for_identity(self, identity_id: str) -> int:
        """Delete the identity's whole record.

        Unconditional: the auto-revoke policy is checked by the caller.

        Returns:
            Number of credentials the identity held (0 if it had no record).
        """
        record = self.store.delete_record(identity_id)
        if record is None:
            logger.debug("revoke_all: identity has no credentials", identity_id=identity_id)
            return 0

        self.store.save()
        logger.info("All credentials revoked", identity_id=identity_id, removed=record.count)
        return record.count

    # ─── Reads ────────────────────────────────────────────────────────────

    def status(self, value: str) -> CredentialStatus:
        owner = self.store.find_owner(value)
        if owner is None:
            return CredentialStatus(found=False)
        return CredentialStatus(
            found=True,
            owner_identity_id=owner.identity_id,
            owner_display_name=owner.credential.owner_display_name,
            issued_at=owner.credential.issued_at,
        )

    def list_all(self) -> list[CredentialListing]:
        """Every credential in the store, identity order then issuance order."""
        return [
            CredentialListing(
                identity_id=identity_id,
                display_name=credential.owner_display_name,
                value=credential.value,
                issued_at=credential.issued_at,
            )
            for identity_id, record in self.store.records()
            for credential in record.credentials
        ]

    def list_for_identity(self, identity_id: str) -> list[Credential]:
        record = self.store.get_record(identity_id)
        if record is None:
            return []
        return list(record.credentials)


def _issued_message(credential: Credential) -> str:
    lines = [
        "Your new API key:",
        credential.value,
        f"Generated at: {format_timestamp(credential.issued_at)}",
    ]
    if credential.issued_by_identity_id is not None:
        lines.insert(0, "An API key has been added to your account by an administrator.")
        lines.append(f"Reason: {credential.issue_reason}")
    return "\n".join(lines)

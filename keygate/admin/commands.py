"""Credential command surface for the identity platform's bot.

CredentialCommands sits between the chat-command layer (out of scope: command
registration, argument parsing, message formatting) and the lifecycle
manager. It performs the caller checks the commands require and returns
structured results for the chat layer to render.

Command access:
  generate, show  — any identity; only in admin.allowed_channel when set
  status          — any identity, any channel
  list, remove,
  add, auto-remove — admin.owner_id only

Departure handling:
  on_member_departed() is wired to the platform's "member removed" event.
  It does nothing unless admin.auto_revoke_on_departure is true.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from keygate.config import Config, reload_auto_revoke, save_auto_revoke
from keygate.credentials.errors import CredentialNotFoundError
from keygate.credentials.lifecycle import CredentialLifecycleManager
from keygate.credentials.models import Credential, CredentialListing, CredentialStatus
from keygate.notify import dispatch_notification
from keygate.utils.logger import get_logger, mask_credential

logger = get_logger(__name__)


# ─── Exceptions ───────────────────────────────────────────────────────────────


class PermissionDeniedError(Exception):
    """Raised when a non-owner invokes an owner-only command."""

    def __init__(self, identity_id: str, command: str) -> None:
        super().__init__(f"Only the bot owner can use '{command}'.")
        self.identity_id = identity_id
        self.command = command


class ChannelNotAllowedError(Exception):
    """Raised when a self-service command is used outside the allowed channel."""

    def __init__(self, channel_id: Optional[str], allowed_channel: str) -> None:
        super().__init__("This command can only be used in the designated channel.")
        self.channel_id = channel_id
        self.allowed_channel = allowed_channel


# ─── Results ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class KeyOverview:
    """An identity's own credentials plus quota usage ("2/3", 1 remaining)."""

    credentials: list[Credential]
    held: int
    limit: int
    remaining: int


# ─── Commands ─────────────────────────────────────────────────────────────────


class CredentialCommands:
    def __init__(self, manager: CredentialLifecycleManager, config: Config) -> None:
        self.manager = manager
        self.config = config

    # ── Helpers ───────────────────────────────────────────────────────────

    def is_owner(self, identity_id: str) -> bool:
        owner_id = self.config.admin.owner_id
        return owner_id is not None and identity_id == owner_id

    def _require_owner(self, identity_id: str, command: str) -> None:
        if not self.is_owner(identity_id):
            logger.warning("Owner command rejected", identity_id=identity_id, command=command)
            raise PermissionDeniedError(identity_id, command)

    def _require_channel(self, channel_id: Optional[str]) -> None:
        allowed = self.config.admin.allowed_channel
        if allowed and channel_id != allowed:
            raise ChannelNotAllowedError(channel_id, allowed)

    # ── Self-service ──────────────────────────────────────────────────────

    def generate(
        self, identity_id: str, display_name: str, channel_id: Optional[str] = None
    ) -> Credential:
        """Issue a credential to the caller. The value is delivered by DM.

        Raises:
            ChannelNotAllowedError: Outside the allowed channel.
            QuotaExceededError:     Caller already holds the maximum.
        """
        self._require_channel(channel_id)
        return self.manager.issue(identity_id, display_name)

    def show(self, identity_id: str, channel_id: Optional[str] = None) -> KeyOverview:
        self._require_channel(channel_id)
        credentials = self.manager.list_for_identity(identity_id)
        quota = self.manager.quota
        return KeyOverview(
            credentials=credentials,
            held=len(credentials),
            limit=quota.max_credentials,
            remaining=quota.remaining(self.manager.store.get_record(identity_id)),
        )

    def status(self, value: str) -> CredentialStatus:
        return self.manager.status(value)

    # ── Owner only ────────────────────────────────────────────────────────

    def list_keys(self, caller_id: str) -> list[CredentialListing]:
        self._require_owner(caller_id, "list")
        return self.manager.list_all()

    def remove_key(self, caller_id: str, value: str) -> None:
        """Revoke ``value`` on the owner's behalf.

        Raises:
            PermissionDeniedError:   Caller is not the owner.
            CredentialNotFoundError: No identity holds ``value``.
        """
        self._require_owner(caller_id, "remove")
        if not self.manager.revoke(value):
            logger.info(
                "Owner remove: credential not found",
                caller_id=caller_id,
                credential=mask_credential(value),
            )
            raise CredentialNotFoundError(f"No API key matches {mask_credential(value)}.")
        logger.info(
            "Owner removed credential",
            caller_id=caller_id,
            credential=mask_credential(value),
        )

    def add_key(
        self,
        caller_id: str,
        target_id: str,
        target_name: str,
        reason: Optional[str] = None,
    ) -> Credential:
        """Issue a credential to ``target_id`` on the owner's behalf.

        Raises:
            PermissionDeniedError: Caller is not the owner.
            QuotaExceededError:    Target already holds the maximum.
        """
        self._require_owner(caller_id, "add")
        return self.manager.issue(target_id, target_name, on_behalf_of=caller_id, reason=reason)

    def set_auto_remove(self, caller_id: str, enabled: bool) -> bool:
        """Toggle auto-revocation on departure and persist it to the config file.

        Raises:
            PermissionDeniedError: Caller is not the owner.
            PersistenceError:      The config file could not be written; the
                                   in-memory flag is unchanged.
        """
        self._require_owner(caller_id, "auto-remove")
        save_auto_revoke(self.config, enabled)
        return self.config.admin.auto_revoke_on_departure

    # ── Platform events ───────────────────────────────────────────────────

    def on_member_departed(self, identity_id: str, display_name: str) -> int:
        """Revoke everything ``identity_id`` holds, if auto-revocation is on.

        The flag is re-read from the config file first, so hand edits made
        while the process runs take effect on the next departure.

        Returns:
            Number of credentials removed (0 when disabled or none held).
        """
        if not reload_auto_revoke(self.config):
            return 0

        removed = self.manager.revoke_all_for_identity(identity_id)
        if removed == 0:
            return 0

        logger.info(
            "Auto-removed credentials for departed identity",
            identity_id=identity_id,
            display_name=display_name,
            removed=removed,
        )
        owner_id = self.config.admin.owner_id
        if owner_id is not None:
            dispatch_notification(
                self.manager.notifier,
                owner_id,
                f"Automatically removed {removed} API key(s) for {display_name} "
                f"({identity_id}) who left the server.",
            )
        return removed

"""KeyGate administrative command surface.

Public API:
  - CredentialCommands      — caller-checked wrappers over the lifecycle manager
  - KeyOverview             — result of the "show" command
  - PermissionDeniedError   — non-owner used an owner-only command
  - ChannelNotAllowedError  — self-service command used outside the allowed channel
"""

from __future__ import annotations

from keygate.admin.commands import (
    ChannelNotAllowedError,
    CredentialCommands,
    KeyOverview,
    PermissionDeniedError,
)

__all__ = [
    "ChannelNotAllowedError",
    "CredentialCommands",
    "KeyOverview",
    "PermissionDeniedError",
]

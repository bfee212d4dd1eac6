"""Credential value generation.

Values are ``Apikey-`` followed by 23 characters drawn uniformly from the
62-symbol alphanumeric alphabet using the ``secrets`` CSPRNG. Collisions are
not checked against the store; at ~137 bits of entropy they are negligible.
"""

from __future__ import annotations

import secrets

from keygate.constants import CREDENTIAL_ALPHABET, CREDENTIAL_PREFIX, CREDENTIAL_RANDOM_LENGTH


def generate_credential_value() -> str:
    """Return a fresh ``Apikey-<23 alnum>`` value (30 chars total)."""
    body = "".join(secrets.choice(CREDENTIAL_ALPHABET) for _ in range(CREDENTIAL_RANDOM_LENGTH))
    return f"{CREDENTIAL_PREFIX}{body}"

"""Shared constants for KeyGate.

Quota limits, credential format and default file locations live here.
No magic numbers in other modules — import from here.
"""

import string

# ─── Quota ────────────────────────────────────────────────────────────────────

# Maximum live credentials per identity. Applied identically to self-service
# and administrator issuance; checked at issuance time only.
MAX_CREDENTIALS_PER_IDENTITY: int = 3

# ─── Credential Format ────────────────────────────────────────────────────────

# Every issued value looks like "Apikey-<23 chars>" (30 chars total).
CREDENTIAL_PREFIX: str = "Apikey-"
CREDENTIAL_RANDOM_LENGTH: int = 23

# 62-symbol alphabet: A-Z, a-z, 0-9. Each character is drawn uniformly.
CREDENTIAL_ALPHABET: str = string.ascii_uppercase + string.ascii_lowercase + string.digits

# Reason recorded when an administrator issues a credential without one.
DEFAULT_ISSUE_REASON: str = "No reason provided"

# ─── Persistence ──────────────────────────────────────────────────────────────

# Default location of the credential file, relative to the working directory.
DEFAULT_STORE_PATH: str = "apikeys.json"

# JSON indentation for the credential file (keeps it diff-friendly for manual recovery).
STORE_JSON_INDENT: int = 2

# File mode applied to the credential file on every save (owner read/write only).
STORE_FILE_MODE: int = 0o600

# ─── HTTP ─────────────────────────────────────────────────────────────────────

# Where the gate looks for the presented credential, in order.
CREDENTIAL_QUERY_PARAM: str = "apikey"
CREDENTIAL_HEADER: str = "x-api-key"

# Rate limit for the gated resource route (slowapi syntax).
RESOURCE_RATE_LIMIT: str = "30/minute"

# Inbound request id header; echoed on every response and bound into logs.
REQUEST_ID_HEADER: str = "x-request-id"

# Generated images kept in memory for GET /generated/<id>.png; oldest evicted first.
IMAGE_CACHE_MAX_ENTRIES: int = 256

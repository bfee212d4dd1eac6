"""KeyGate request authorization.

Public API:
  - AccessGate          — master key or store lookup → AccessDecision
  - AccessDecision      — ALLOW / MISSING_CREDENTIAL / INVALID_CREDENTIAL
  - require_credential  — FastAPI Depends() dependency (HTTP 401 on deny)
"""

from __future__ import annotations

from keygate.gate.access import AccessDecision, AccessGate
from keygate.gate.middleware import extract_credential, require_credential

__all__ = [
    "AccessDecision",
    "AccessGate",
    "extract_credential",
    "require_credential",
]

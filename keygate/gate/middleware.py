"""KeyGate HTTP credential check.

Provides ``require_credential()``: a FastAPI Depends()-compatible dependency
that reads the presented credential and asks the application's AccessGate
(``app.state.gate``) for a decision before the route handler runs.

Extraction precedence:
  1. ``apikey`` query parameter
  2. ``x-api-key`` header

Denials are HTTP 401 with a machine-readable body:
  - no credential at all  → {"error": "API key required for authentication",
                             "message": "Provide apikey as query parameter or x-api-key header"}
  - unknown credential    → {"error": "Invalid or expired api key."}
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request

from keygate.constants import CREDENTIAL_HEADER, CREDENTIAL_QUERY_PARAM
from keygate.gate.access import AccessDecision, AccessGate
from keygate.utils.logger import get_logger

logger = get_logger(__name__)

MISSING_CREDENTIAL_DETAIL: dict[str, str] = {
    "error": "API key required for authentication",
    "message": "Provide apikey as query parameter or x-api-key header",
}

INVALID_CREDENTIAL_DETAIL: dict[str, str] = {
    "error": "Invalid or expired api key.",
}


def extract_credential(request: Request) -> Optional[str]:
    """Return the presented credential, or None if the request carries none."""
    return request.query_params.get(CREDENTIAL_QUERY_PARAM) or request.headers.get(
        CREDENTIAL_HEADER
    )


async def require_credential(request: Request) -> None:
    """FastAPI dependency: reject the request unless its credential is accepted.

    Raises:
        HTTPException(401): With MISSING_CREDENTIAL_DETAIL or INVALID_CREDENTIAL_DETAIL.
    """
    gate: AccessGate = request.app.state.gate
    decision = gate.authorize(extract_credential(request))

    if decision is AccessDecision.ALLOW:
        return

    logger.warning(
        "Access denied",
        reason=decision.value,
        path=str(request.url.path),
        method=request.method,
    )
    if decision is AccessDecision.MISSING_CREDENTIAL:
        raise HTTPException(status_code=401, detail=MISSING_CREDENTIAL_DETAIL)
    raise HTTPException(status_code=401, detail=INVALID_CREDENTIAL_DETAIL)

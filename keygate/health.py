"""Health endpoint for KeyGate.

  GET /health — 503 before startup completes, 200 with store counters after.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    if not getattr(request.app.state, "ready", False):
        raise HTTPException(status_code=503, detail={"status": "starting"})

    store = request.app.state.store
    return {
        "status": "ok",
        "identities": len(store),
        "credentials": store.credential_count(),
    }

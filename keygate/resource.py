"""Gated resource routes.

The resource itself (image generation) is an external collaborator plugged in
through the ResourceProducer protocol and stored on ``app.state.producer``.
This module owns the HTTP side: credential check, rate limit, prompt
validation, timing, caching of the produced image and error mapping.

  GET /image?prompt=...     — 401 without an accepted credential
                              400 without a prompt
                              503 when no producer is configured
                              500 when the producer fails
                              200 {message, status, imageId, image, prompt, duration}
  GET /generated/<id>.png   — the cached PNG; 404 for an unknown id.
                              Not gated: the id is only handed out by /image.
"""

from __future__ import annotations

import time
from typing import Any, Optional, Protocol, runtime_checkable

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from keygate.constants import RESOURCE_RATE_LIMIT
from keygate.gate.middleware import require_credential
from keygate.images import ImageCache
from keygate.limiter import limiter
from keygate.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["resource"])


@runtime_checkable
class ResourceProducer(Protocol):
    """Produces the gated resource for a prompt."""

    async def produce(self, prompt: str) -> bytes:
        """Return PNG image bytes. Any exception is reported as a 500."""
        ...


@router.get("/image", dependencies=[Depends(require_credential)])
@limiter.limit(RESOURCE_RATE_LIMIT)
async def get_image(request: Request, prompt: Optional[str] = None) -> dict[str, Any]:
    if not prompt:
        raise HTTPException(status_code=400, detail={"error": "Prompt parameter is required"})

    producer: Optional[ResourceProducer] = getattr(request.app.state, "producer", None)
    if producer is None:
        raise HTTPException(status_code=503, detail={"error": "No resource producer configured"})

    started = time.perf_counter()
    try:
        data = await producer.produce(prompt)
    except Exception as exc:
        duration = time.perf_counter() - started
        logger.error("Resource production failed", error=str(exc), duration_s=round(duration, 2))
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to generate image", "duration": f"{duration:.2f}s"},
        ) from exc

    images: ImageCache = request.app.state.images
    image_id = images.put(data)
    duration = time.perf_counter() - started
    logger.info("Image generated", image_id=image_id, size=len(data), duration_s=round(duration, 2))

    return {
        "message": "Image generated successfully",
        "status": "success",
        "imageId": image_id,
        "image": str(request.url_for("get_generated_image", image_id=image_id)),
        "prompt": prompt,
        "duration": f"{duration:.2f}s",
    }


@router.get("/generated/{image_id}.png")
async def get_generated_image(request: Request, image_id: str) -> Response:
    images: ImageCache = request.app.state.images
    data = images.get(image_id)
    if data is None:
        raise HTTPException(status_code=404, detail={"error": "Image not found"})
    return Response(content=data, media_type="image/png")

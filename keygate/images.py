"""In-memory cache of generated images.

GET /image stores the produced PNG bytes here under a fresh id and answers
with a URL; GET /generated/<id>.png serves them back. The cache is bounded:
once full, the oldest image is evicted. Nothing survives a restart.
"""

from __future__ import annotations

import secrets
import time
from collections import OrderedDict
from typing import Optional

from keygate.constants import IMAGE_CACHE_MAX_ENTRIES
from keygate.utils.logger import get_logger

logger = get_logger(__name__)


def new_image_id() -> str:
    """``<unix millis>-<12 hex chars>``; safe to embed in a URL path."""
    return f"{int(time.time() * 1000)}-{secrets.token_hex(6)}"


class ImageCache:
    def __init__(self, max_entries: int = IMAGE_CACHE_MAX_ENTRIES) -> None:
        self.max_entries = max_entries
        self._images: OrderedDict[str, bytes] = OrderedDict()

    def put(self, data: bytes) -> str:
        image_id = new_image_id()
        self._images[image_id] = data
        while len(self._images) > self.max_entries:
            evicted, _ = self._images.popitem(last=False)
            logger.debug("Image evicted from cache", image_id=evicted)
        return image_id

    def get(self, image_id: str) -> Optional[bytes]:
        return self._images.get(image_id)

    def __len__(self) -> int:
        return len(self._images)

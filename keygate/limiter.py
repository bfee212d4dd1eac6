"""Shared rate limiter for the gated resource route.

Uses slowapi (Starlette-compatible rate limiting), keyed by client address.

The Limiter instance is created here and shared between:
  - keygate/resource.py  (route decorator)
  - keygate/main.py      (app.state.limiter + SlowAPIMiddleware registration)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

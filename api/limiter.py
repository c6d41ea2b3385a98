"""
api/limiter.py -- The one slowapi Limiter shared by every router.

api/main.py mounts it (SlowAPIMiddleware reads app.state.limiter) and the
route modules decorate handlers with @limiter.limit(). A second Limiter
instance would keep its own counters and never see the other's hits.

Requests are keyed by client IP. Counters live in RATE_LIMIT_STORAGE_URI
(in-process memory by default), so with several workers each worker
enforces its own budget unless a shared backend is configured.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri=get_settings().rate_limit_storage_uri)

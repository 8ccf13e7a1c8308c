"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount the middleware and the 429 handler) and by
api/routes/v1/users.py (to apply per-route limits with @limiter.limit()).

One shared instance means every route shares the same in-memory counter
store. The enabled flag is process-wide too: each create_app() call sets
limiter.enabled from its Settings.rate_limit_enabled, which also applies to
apps built earlier in the same process. The route decorators are bound to
this instance at import time, so a per-app limiter is not possible.

Decorator order: @router.post(...) goes ABOVE @limiter.limit(...), so the
function FastAPI registers is the rate-limited wrapper.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (to mount as middleware and state) and by
api/routes/v1/auth.py (per-route limits with @limiter.limit()). The limit
strings themselves live in core.config so deployments can tune them.

One shared instance means one counter store. A limiter per module would keep
isolated counters and the limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")

# storefront/app/core/redis_conn.py
from __future__ import annotations

from typing import Optional

from redis import Redis as SyncRedis

from storefront.app.core.config import settings

# Module-level singleton
_sync_client: Optional[SyncRedis] = None


def get_sync_redis() -> SyncRedis:
    """
    Return a singleton synchronous Redis client.
    The cart snapshot is written from a worker thread, so the sync client is enough.
    """
    global _sync_client
    if _sync_client is None:
        _sync_client = SyncRedis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
    return _sync_client


def ping() -> bool:
    """
    Lightweight sync ping for health checks.
    """
    try:
        return bool(get_sync_redis().ping())
    except Exception:
        return False

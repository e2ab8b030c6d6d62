from __future__ import annotations

from fastapi import APIRouter

from storefront.app.core.config import settings

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health():
    # Only touch redis when it is the configured cart store
    redis_probe = "skip"
    if settings.effective_store_backend == "redis":
        from storefront.app.core.redis_conn import ping
        redis_probe = "ok" if ping() else "fail"

    return {
        "service": settings.service_name,
        "version": settings.version,
        "env": {
            "environment": settings.environment,
            "api_base_url": settings.api_base_url,
        },
        "features": {
            "cart_store": settings.effective_store_backend,
            "remote_sync": settings.remote_sync_enabled,
            "currency": settings.currency,
            "products_page_size": settings.products_page_size,
        },
        "status": "ok",
        "probes": {
            "redis": redis_probe,
        },
    }

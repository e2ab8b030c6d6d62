from __future__ import annotations

import logging
from typing import Optional

import httpx

from storefront.app.core.config import Settings, get_settings
from storefront.app.core.events import CartEventBus
from storefront.app.integrations.storefront_api.client import StorefrontApiClient
from storefront.app.services.cart_engine import CartEngine
from storefront.app.services.cart_store import CartPersistence, build_persistence
from storefront.app.services.remote_sync import ErrorReporter, RemoteCartSync

logger = logging.getLogger(__name__)


def build_remote_sync(
    settings: Settings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    error_reporter: Optional[ErrorReporter] = None,
) -> Optional[RemoteCartSync]:
    if not settings.remote_sync_enabled:
        return None
    client = StorefrontApiClient(
        settings.api_base_url,
        timeout=settings.remote_timeout_seconds,
        transport=transport,
    )
    return RemoteCartSync(client, pull_attempts=settings.remote_pull_attempts, error_reporter=error_reporter)


def build_engine(
    settings: Optional[Settings] = None,
    *,
    persistence: Optional[CartPersistence] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    error_reporter: Optional[ErrorReporter] = None,
    bus: Optional[CartEventBus] = None,
) -> CartEngine:
    """
    Compose one session's cart engine from settings:
      - local snapshot store picked by cart_store_backend
      - remote sync when remote_sync_enabled
    The caller owns the engine and hands it to its views.
    """
    settings = settings or get_settings()
    persistence = persistence or build_persistence(settings)
    remote = build_remote_sync(settings, transport=transport, error_reporter=error_reporter)
    logger.info(
        "Building cart engine (store=%s, remote=%s)",
        settings.effective_store_backend,
        settings.api_base_url if remote else "off",
    )
    return CartEngine(
        persistence,
        remote,
        bus=bus,
        shipping_flat_fee=settings.shipping_flat_fee,
        tax_rate=settings.tax_rate,
        startup_pull_wait_seconds=settings.startup_pull_wait_seconds,
        currency=settings.currency,
    )


async def open_session(settings: Optional[Settings] = None, **kwargs) -> CartEngine:
    """build_engine() followed by the startup pull."""
    engine = build_engine(settings, **kwargs)
    await engine.start()
    return engine

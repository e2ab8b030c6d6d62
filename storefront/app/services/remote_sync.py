# storefront/app/services/remote_sync.py
from __future__ import annotations

import logging
from typing import Callable, Optional

from storefront.app.core.metrics import cart_sync, cart_sync_duration, cart_sync_inflight
from storefront.app.integrations.storefront_api.client import (
    StorefrontApiClient,
    StorefrontApiError,
    fetch_cart_with_retry,
)
from storefront.app.models.cart import CartAggregate

logger = logging.getLogger(__name__)

# Called with (direction, error) whenever a pull/push fails: "pull" | "push"
ErrorReporter = Callable[[str, BaseException], None]


def log_error_reporter(direction: str, error: BaseException) -> None:
    logger.error("Remote cart %s failed: %s", direction, error)


class SyncToken:
    """
    Per-request cancel token. Cancelling does not abort the HTTP call; it tells
    the owner not to apply whatever the call returns.
    """

    __slots__ = ("label", "_cancelled")

    def __init__(self, label: str = ""):
        self.label = label
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def __repr__(self) -> str:
        return f"SyncToken({self.label!r}, cancelled={self._cancelled})"


class RemoteCartSync:
    """
    Best-effort mirror of the cart on the storefront API.

    pull(): the remote cart, or None when unreachable/unusable.
    push(): sends the full item array; failures go to the error reporter and
    are never raised.
    """

    def __init__(
        self,
        client: StorefrontApiClient,
        *,
        pull_attempts: int = 1,
        error_reporter: Optional[ErrorReporter] = None,
    ):
        self.client = client
        self.pull_attempts = max(1, int(pull_attempts))
        self.error_reporter: ErrorReporter = error_reporter or log_error_reporter

    def _report(self, direction: str, error: BaseException) -> None:
        try:
            self.error_reporter(direction, error)
        except Exception:
            logger.exception("Error reporter failed while reporting %s error", direction)

    async def pull(self, token: Optional[SyncToken] = None) -> Optional[CartAggregate]:
        labels = {"direction": "pull"}
        stop = cart_sync_duration.timer(labels)
        cart_sync_inflight.inc(labels)
        try:
            aggregate = await fetch_cart_with_retry(self.client, attempts=self.pull_attempts)
        except StorefrontApiError as e:
            cart_sync.inc({**labels, "result": "fail"})
            self._report("pull", e)
            return None
        finally:
            cart_sync_inflight.dec(labels)
            stop()

        if token is not None and token.cancelled:
            cart_sync.inc({**labels, "result": "stale"})
            logger.debug("Dropping remote cart for cancelled %r", token)
            return None

        cart_sync.inc({**labels, "result": "ok"})
        logger.info("Pulled remote cart (lines=%d, units=%d)", len(aggregate.items), aggregate.item_count)
        return aggregate

    async def push(self, aggregate: CartAggregate, token: Optional[SyncToken] = None) -> None:
        labels = {"direction": "push"}
        stop = cart_sync_duration.timer(labels)
        cart_sync_inflight.inc(labels)
        try:
            await self.client.put_cart(aggregate.to_wire())
        except StorefrontApiError as e:
            cart_sync.inc({**labels, "result": "fail"})
            self._report("push", e)
            return
        finally:
            cart_sync_inflight.dec(labels)
            stop()

        cart_sync.inc({**labels, "result": "ok"})
        if token is not None and token.cancelled:
            logger.debug("Push finished after teardown of %r", token)

# storefront/app/services/cart_engine.py
"""
Cart state engine.

The module has two layers:

  * pure transitions, ``(cart, args) -> cart``. A transition that changes
    nothing returns the very same object, which is how the engine tells a
    no-op from a change;
  * ``CartEngine``, the single owner of a session's cart. It applies a
    transition, swaps the new aggregate in, then schedules the local save and
    the remote push and notifies subscribers.

Usage:

    engine = CartEngine(persistence, remote)
    await engine.start()                 # remote cart wins if it answers in time
    unsubscribe = engine.subscribe(render)
    engine.add(product)
    engine.remove_one(product.id)
"""
from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Set

from storefront.app.core.events import CartEvent, CartEventBus, CartListener
from storefront.app.core.metrics import cart_mutations
from storefront.app.models.cart import CartAggregate, LineItem, as_line_item
from storefront.app.services.cart_store import CartPersistence
from storefront.app.services.money import OrderSummary, summarize
from storefront.app.services.remote_sync import RemoteCartSync, SyncToken

logger = logging.getLogger(__name__)


def is_valid_quantity(value: Any) -> bool:
    """Quantities are plain ints >= 1 (bools are not quantities)."""
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


# =========================================================
# Pure transitions
# =========================================================

def _replace(cart: CartAggregate, item: LineItem) -> CartAggregate:
    return CartAggregate(
        items=tuple(item if it.product_id == item.product_id else it for it in cart.items)
    )


def add_item(cart: CartAggregate, product: Any, quantity: int = 1) -> CartAggregate:
    if not is_valid_quantity(quantity):
        return cart
    line = as_line_item(product, quantity)
    existing = cart.find(line.product_id)
    if existing is not None:
        return _replace(cart, existing.with_quantity(existing.quantity + quantity))
    return CartAggregate(items=cart.items + (line,))


def remove_one(cart: CartAggregate, product_id: int) -> CartAggregate:
    existing = cart.find(product_id)
    if existing is None:
        return cart
    if existing.quantity > 1:
        return _replace(cart, existing.with_quantity(existing.quantity - 1))
    return remove_item(cart, product_id)


def reduce_quantity(cart: CartAggregate, product_id: int) -> CartAggregate:
    """Like remove_one, but a line never goes below 1."""
    existing = cart.find(product_id)
    if existing is None or existing.quantity <= 1:
        return cart
    return _replace(cart, existing.with_quantity(existing.quantity - 1))


def set_quantity(cart: CartAggregate, product_id: int, quantity: int) -> CartAggregate:
    # quantity < 1 is rejected, not treated as a delete: use remove_item for that
    if not is_valid_quantity(quantity):
        return cart
    existing = cart.find(product_id)
    if existing is None or existing.quantity == quantity:
        return cart
    return _replace(cart, existing.with_quantity(quantity))


def remove_item(cart: CartAggregate, product_id: int) -> CartAggregate:
    if cart.find(product_id) is None:
        return cart
    return CartAggregate(items=tuple(it for it in cart.items if it.product_id != product_id))


def clear_items(cart: CartAggregate) -> CartAggregate:
    return cart if cart.is_empty else CartAggregate.empty()


# =========================================================
# Engine
# =========================================================

def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class CartEngine:
    """
    Owns one session's cart. All mutations are synchronous and return the new
    immutable snapshot; the save and the push run afterwards as asyncio tasks
    (or, for the save, inline when no event loop is running).
    """

    def __init__(
        self,
        persistence: CartPersistence,
        remote: Optional[RemoteCartSync] = None,
        *,
        bus: Optional[CartEventBus] = None,
        shipping_flat_fee: Decimal = Decimal("5.00"),
        tax_rate: Decimal = Decimal("0.08"),
        startup_pull_wait_seconds: Optional[float] = 2.0,
        currency: str = "USD",
    ):
        self._persistence = persistence
        self._remote = remote
        self._bus = bus or CartEventBus()
        self.shipping_flat_fee = shipping_flat_fee
        self.tax_rate = tax_rate
        self.startup_pull_wait_seconds = startup_pull_wait_seconds
        self.currency = currency

        self._cart = persistence.load() or CartAggregate.empty()
        self._started = False
        self._closed = False
        self._tokens: Set[SyncToken] = set()
        self._tasks: Set[asyncio.Task] = set()
        self._save_target: Optional[CartAggregate] = None
        self._save_task: Optional[asyncio.Task] = None

        logger.debug("Cart engine ready (lines=%d)", len(self._cart.items))

    # ---------------- read side ----------------

    def get_snapshot(self) -> CartAggregate:
        return self._cart

    @property
    def snapshot(self) -> CartAggregate:
        return self._cart

    @property
    def closed(self) -> bool:
        return self._closed

    def summary(self) -> OrderSummary:
        return summarize(
            self._cart.subtotal,
            shipping_flat_fee=self.shipping_flat_fee,
            tax_rate=self.tax_rate,
        )

    def formatted_summary(self) -> Dict[str, str]:
        """summary() as display strings in the configured currency."""
        return self.summary().formatted(self.currency)

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        return self._bus.subscribe(listener)

    # ---------------- mutations ----------------

    def add(self, product: Any, quantity: int = 1) -> CartAggregate:
        if not is_valid_quantity(quantity):
            return self._reject("add", f"quantity must be a positive integer, got {quantity!r}")
        try:
            new = add_item(self._cart, product, quantity)
        except TypeError as e:
            return self._reject("add", str(e))
        return self._apply("add", new)

    def remove_one(self, product_id: int) -> CartAggregate:
        return self._apply("remove_one", remove_one(self._cart, product_id))

    def reduce_quantity(self, product_id: int) -> CartAggregate:
        return self._apply("reduce_quantity", reduce_quantity(self._cart, product_id))

    def set_quantity(self, product_id: int, quantity: int) -> CartAggregate:
        if not is_valid_quantity(quantity):
            return self._reject(
                "set_quantity", f"quantity must be a positive integer, got {quantity!r}; use remove()"
            )
        return self._apply("set_quantity", set_quantity(self._cart, product_id, quantity))

    def remove(self, product_id: int) -> CartAggregate:
        return self._apply("remove", remove_item(self._cart, product_id))

    def clear(self) -> CartAggregate:
        return self._apply("clear", clear_items(self._cart))

    def _reject(self, op: str, reason: str) -> CartAggregate:
        cart_mutations.inc({"op": op, "result": "rejected"})
        logger.warning("Rejected cart %s: %s", op, reason)
        return self._cart

    def _apply(self, op: str, new: CartAggregate) -> CartAggregate:
        if self._closed:
            return self._reject(op, "engine is closed")
        if new is self._cart:
            cart_mutations.inc({"op": op, "result": "noop"})
            return self._cart

        # single assignment: readers see the old cart or the new one, nothing between
        self._cart = new
        cart_mutations.inc({"op": op, "result": "applied"})
        self._schedule_save(new)
        self._schedule_push(new)
        self._bus.publish(CartEvent(op=op, snapshot=new))
        return new

    # ---------------- startup pull ----------------

    async def start(self) -> CartAggregate:
        """
        Pull the remote cart once. If it answers within the startup window and
        nothing was changed locally meanwhile, it replaces the local snapshot.
        A slower answer is left to finish in the background and discarded.
        """
        if self._started or self._closed or self._remote is None:
            return self._cart
        self._started = True

        local_at_start = self._cart
        token = self._new_token("pull")
        task = asyncio.get_running_loop().create_task(self._pull(token))
        self._track(task)
        try:
            remote_cart = await asyncio.wait_for(asyncio.shield(task), timeout=self.startup_pull_wait_seconds)
        except asyncio.TimeoutError:
            token.cancel()
            logger.info(
                "Remote cart did not answer within %.1fs; keeping local snapshot",
                self.startup_pull_wait_seconds or 0.0,
            )
            return self._cart
        finally:
            self._tokens.discard(token)

        if remote_cart is None or token.cancelled or self._closed:
            return self._cart
        if self._cart is not local_at_start:
            logger.info("Cart changed locally during startup pull; remote snapshot dropped")
            return self._cart

        self._hydrate(remote_cart)
        return self._cart

    def _hydrate(self, remote_cart: CartAggregate) -> None:
        if remote_cart == self._cart:
            return
        self._cart = remote_cart
        cart_mutations.inc({"op": "hydrate", "result": "applied"})
        # keep the offline copy in step; no push back, it came from the server
        self._schedule_save(remote_cart)
        self._bus.publish(CartEvent(op="hydrate", snapshot=remote_cart))

    # ---------------- background work ----------------

    def _new_token(self, label: str) -> SyncToken:
        token = SyncToken(label)
        self._tokens.add(token)
        return token

    def _track(self, task: asyncio.Task) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _schedule_save(self, cart: CartAggregate) -> None:
        loop = _running_loop()
        if loop is None:
            self._persistence.save(cart)
            return
        self._save_target = cart
        if self._save_task is None or self._save_task.done():
            self._save_task = loop.create_task(self._drain_saves())
            self._track(self._save_task)

    async def _drain_saves(self) -> None:
        # one writer, always the newest snapshot: writes cannot land out of order
        while self._save_target is not None:
            target, self._save_target = self._save_target, None
            await asyncio.to_thread(self._persistence.save, target)

    def _schedule_push(self, cart: CartAggregate) -> None:
        if self._remote is None:
            return
        loop = _running_loop()
        if loop is None:
            logger.debug("No running event loop; remote push skipped")
            return
        token = self._new_token("push")
        self._track(loop.create_task(self._push(cart, token)))

    async def _pull(self, token: SyncToken) -> Optional[CartAggregate]:
        try:
            return await self._remote.pull(token)
        except Exception:
            logger.exception("Unexpected error while pulling cart; keeping local snapshot")
            return None

    async def _push(self, cart: CartAggregate, token: SyncToken) -> None:
        try:
            await self._remote.push(cart, token)
        except Exception:
            logger.exception("Unexpected error while pushing cart")
        finally:
            self._tokens.discard(token)

    async def flush(self) -> None:
        """Wait for every pending save/push (and a still-running startup pull)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ---------------- teardown ----------------

    def close(self) -> None:
        """
        Detach the engine from its views. Outstanding requests may finish, but
        their results are never applied; later mutations are rejected.
        """
        if self._closed:
            return
        self._closed = True
        for token in list(self._tokens):
            token.cancel()
        self._tokens.clear()
        self._bus.clear()

    async def aclose(self) -> None:
        self.close()
        await self.flush()

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List

if TYPE_CHECKING:
    from storefront.app.models.cart import CartAggregate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CartEvent:
    """Published after every state change of a cart engine."""
    op: str                      # add|remove_one|set_quantity|remove|clear|reduce_quantity|hydrate
    snapshot: "CartAggregate"
    ts: float = field(default_factory=time.time)


CartListener = Callable[[CartEvent], None]


class CartEventBus:
    """
    Synchronous fan-out to view listeners.
    Listeners run on the caller's thread, in subscription order.
    """

    def __init__(self) -> None:
        self._listeners: List[CartListener] = []

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        """
        Register a listener; returns a callable that removes it again.

            unsubscribe = bus.subscribe(render)
            ...
            unsubscribe()
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass  # already removed

        return _unsubscribe

    def publish(self, event: CartEvent) -> None:
        # iterate over a copy: listeners may unsubscribe while handling
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                # one broken view must not break the others or the mutation
                logger.exception("Cart listener %r failed on %s", listener, event.op)

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)

from __future__ import annotations

import pytest

from storefront.app.core.metrics import REGISTRY
from storefront.app.models.catalog import Product
from storefront.app.services.cart_store import CartPersistence, MemoryKeyValueStore
from storefront.routes.api_cart import reset_server_cart


@pytest.fixture(autouse=True)
def _clean_slate():
    # metrics and the reference server cart are process-wide
    REGISTRY.reset()
    reset_server_cart()
    yield
    reset_server_cart()


@pytest.fixture
def persistence() -> CartPersistence:
    return CartPersistence(MemoryKeyValueStore(), key="cart-storage")


@pytest.fixture
def tee() -> Product:
    return Product(id=1, name="Tee", price=19.99, picture="/assets/tee.png")


@pytest.fixture
def mug() -> Product:
    return Product(id=2, name="Mug", price=12.00)


@pytest.fixture
def tote() -> Product:
    return Product(id=3, name="Tote", price="14.99")

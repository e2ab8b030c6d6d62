from __future__ import annotations

import asyncio
from decimal import Decimal

import httpx
import pytest

from storefront.app.core.config import settings
from storefront.app.core.metrics import cart_sync, cart_sync_duration, cart_sync_inflight
from storefront.app.integrations.storefront_api.client import StorefrontApiClient, StorefrontApiError
from storefront.app.models.cart import CartAggregate, LineItem
from storefront.app.services.remote_sync import RemoteCartSync, SyncToken
from storefront.main import app
from storefront.routes.api_cart import get_server_cart, reset_server_cart
from storefront.routes.api_products import MOCK_PRODUCTS


def _api(transport: httpx.AsyncBaseTransport) -> StorefrontApiClient:
    return StorefrontApiClient("http://testserver", timeout=2.0, transport=transport)


def _asgi() -> httpx.ASGITransport:
    return httpx.ASGITransport(app=app)


def _cart() -> CartAggregate:
    return CartAggregate(
        items=(
            LineItem(product_id=5, title="Ceramic Mug", unit_price=Decimal("12.00"), quantity=2),
            LineItem(product_id=1, title="Classic Tee", unit_price=Decimal("19.99"), quantity=1),
        )
    )


def _collect():
    errors = []
    return errors, lambda direction, err: errors.append((direction, err))


def test_pull_reads_server_cart():
    reset_server_cart(_cart())
    sync = RemoteCartSync(_api(_asgi()))
    assert asyncio.run(sync.pull()) == _cart()
    assert cart_sync.value({"direction": "pull", "result": "ok"}) == 1
    assert cart_sync_duration.count({"direction": "pull"}) == 1
    assert cart_sync_inflight.value({"direction": "pull"}) == 0


def test_pull_accepts_bare_list_in_legacy_shape():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/view_cart"
        return httpx.Response(200, json=[{"id": 3, "name": "Silk Pillowcase", "price": 34.0, "quantity": 1}])

    cart = asyncio.run(RemoteCartSync(_api(httpx.MockTransport(handler))).pull())
    assert cart.find(3).unit_price == Decimal("34.0")
    assert cart.item_count == 1


def test_pull_failure_is_reported_and_returns_none():
    errors, reporter = _collect()
    transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"detail": "boom"}))
    sync = RemoteCartSync(_api(transport), error_reporter=reporter)

    assert asyncio.run(sync.pull()) is None
    assert len(errors) == 1
    direction, err = errors[0]
    assert direction == "pull"
    assert isinstance(err, StorefrontApiError)
    assert err.status_code == 500
    assert cart_sync.value({"direction": "pull", "result": "fail"}) == 1


def test_pull_retries_transient_failures():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if len(calls) < 3:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"items": [], "count": 0})

    sync = RemoteCartSync(_api(httpx.MockTransport(handler)), pull_attempts=3)
    cart = asyncio.run(sync.pull())
    assert cart == CartAggregate.empty()
    assert len(calls) == 3


def test_pull_does_not_retry_client_errors():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(404)

    errors, reporter = _collect()
    sync = RemoteCartSync(_api(httpx.MockTransport(handler)), pull_attempts=3, error_reporter=reporter)
    assert asyncio.run(sync.pull()) is None
    assert len(calls) == 1
    assert errors[0][1].status_code == 404


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, text="<html>maintenance</html>"),
        httpx.Response(200, json={"cart": []}),
        httpx.Response(200, json=[{"productId": 1, "unitPrice": 1, "quantity": -2}]),
        httpx.Response(204),
    ],
)
def test_pull_rejects_unusable_bodies(response):
    errors, reporter = _collect()
    sync = RemoteCartSync(_api(httpx.MockTransport(lambda request: response)), error_reporter=reporter)
    assert asyncio.run(sync.pull()) is None
    assert len(errors) == 1


def test_pull_result_dropped_for_cancelled_token():
    reset_server_cart(_cart())
    token = SyncToken("pull")
    token.cancel()
    assert asyncio.run(RemoteCartSync(_api(_asgi())).pull(token)) is None
    assert cart_sync.value({"direction": "pull", "result": "stale"}) == 1


def test_push_replaces_server_cart():
    sync = RemoteCartSync(_api(_asgi()))
    asyncio.run(sync.push(_cart()))
    assert get_server_cart() == _cart()
    assert cart_sync.value({"direction": "push", "result": "ok"}) == 1

    asyncio.run(sync.push(CartAggregate.empty()))
    assert get_server_cart().is_empty


def test_push_failure_is_reported_not_raised():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    errors, reporter = _collect()
    sync = RemoteCartSync(_api(httpx.MockTransport(handler)), error_reporter=reporter)
    asyncio.run(sync.push(_cart()))
    assert [d for d, _ in errors] == ["push"]
    assert cart_sync.value({"direction": "push", "result": "fail"}) == 1
    assert cart_sync_inflight.value({"direction": "push"}) == 0


def test_broken_error_reporter_is_contained():
    def reporter(direction, err):
        raise RuntimeError("reporter crashed")

    sync = RemoteCartSync(
        _api(httpx.MockTransport(lambda request: httpx.Response(502))), error_reporter=reporter
    )
    assert asyncio.run(sync.pull()) is None
    asyncio.run(sync.push(_cart()))


def test_put_cart_with_duplicate_lines_is_rejected_by_server():
    dup = [
        {"productId": 1, "title": "a", "unitPrice": 1, "quantity": 1},
        {"productId": 1, "title": "a", "unitPrice": 1, "quantity": 2},
    ]
    with pytest.raises(StorefrontApiError) as ei:
        asyncio.run(_api(_asgi()).put_cart(dup))
    assert ei.value.status_code == 422
    assert get_server_cart().is_empty


def test_fetch_products_pages():
    client = _api(_asgi())
    per_page = settings.products_page_size

    first = asyncio.run(client.fetch_products(1))
    assert first.page == 1
    assert [p.id for p in first.products] == [p["id"] for p in MOCK_PRODUCTS[:per_page]]

    clamped = asyncio.run(client.fetch_products(0))
    assert clamped.page == 1
    assert [p.id for p in clamped.products] == [p.id for p in first.products]

    past_end = asyncio.run(client.fetch_products(len(MOCK_PRODUCTS) + 1))
    assert len(past_end) == 0


def test_fetch_products_bare_list_and_bad_shape():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=[{"id": 1, "price": None}]))
    page = asyncio.run(_api(transport).fetch_products(2))
    assert page.page == 2
    assert page.products[0].price == Decimal("0")
    assert page.products[0].to_line_item().title == "Untitled"

    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"products": []}))
    with pytest.raises(StorefrontApiError):
        asyncio.run(_api(transport).fetch_products())


def test_push_ignores_non_json_success_body():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(200, text="OK")

    errors, reporter = _collect()
    sync = RemoteCartSync(_api(httpx.MockTransport(handler)), error_reporter=reporter)
    asyncio.run(sync.push(_cart()))
    assert seen == [("PUT", "/api/cart")]
    assert errors == []
    assert cart_sync.value({"direction": "push", "result": "ok"}) == 1
    assert cart_sync.value({"direction": "push", "result": "fail"}) == 0


def test_malformed_base_url_is_a_reported_failure():
    errors, reporter = _collect()
    sync = RemoteCartSync(StorefrontApiClient("http://[::1"), pull_attempts=3, error_reporter=reporter)
    assert asyncio.run(sync.pull()) is None
    asyncio.run(sync.push(_cart()))
    assert [d for d, _ in errors] == ["pull", "push"]
    assert all(isinstance(err, StorefrontApiError) for _, err in errors)
    assert all(isinstance(err.__cause__, httpx.InvalidURL) for _, err in errors)

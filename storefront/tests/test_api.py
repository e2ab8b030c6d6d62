from __future__ import annotations

from fastapi.testclient import TestClient

from storefront.app.core.config import settings
from storefront.main import app
from storefront.routes.api_cart import get_server_cart
from storefront.routes.api_products import MOCK_PRODUCTS

client = TestClient(app)


def test_health_ok():
    r = client.get("/api/health")
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "ok"
    assert data["service"] == settings.service_name
    assert data["features"]["cart_store"] in {"file", "redis", "memory"}
    assert data["features"]["products_page_size"] == settings.products_page_size
    assert data["probes"]["redis"] in {"skip", "ok", "fail"}


def test_root_lists_endpoints():
    r = client.get("/")
    assert r.status_code == 200
    tips = r.json()["tips"]
    assert tips["view_cart"] == "GET /api/view_cart"
    assert tips["replace_cart"] == "PUT /api/cart"


def test_products_paging():
    per_page = settings.products_page_size
    r = client.get("/api/products")
    assert r.status_code == 200
    body = r.json()
    assert body["page"] == 1
    assert body["total"] == len(MOCK_PRODUCTS)
    assert len(body["data"]) == min(per_page, len(MOCK_PRODUCTS))

    r = client.get("/api/products", params={"page": 2})
    assert [p["id"] for p in r.json()["data"]] == [p["id"] for p in MOCK_PRODUCTS[per_page:2 * per_page]]

    # non-positive pages are clamped to the first page
    assert client.get("/api/products", params={"page": -3}).json()["page"] == 1


def test_cart_replace_and_view_both_shapes():
    items = [
        {"productId": 2, "title": "Canvas Tote", "unitPrice": 14.99, "quantity": 2},
        {"productId": 1, "title": "Classic Tee", "unitPrice": 19.99, "quantity": 1, "imageRef": "/assets/tee.png"},
    ]
    r = client.put("/api/cart", json=items)
    assert r.status_code == 200
    assert r.json() == {"ok": True, "count": 3, "lines": 2}

    r = client.get("/api/view_cart")
    assert r.status_code == 200
    assert r.json() == {"items": items, "count": 3}

    r = client.get("/api/view_cart", params={"shape": "list"})
    assert r.json() == items


def test_cart_empty_by_default():
    assert client.get("/api/view_cart").json() == {"items": [], "count": 0}
    assert client.get("/api/view_cart", params={"shape": "list"}).json() == []


def test_cart_rejects_invalid_lines():
    r = client.put("/api/cart", json=[{"productId": 1, "unitPrice": 1, "quantity": 0}])
    assert r.status_code == 422

    dup = [
        {"productId": 1, "unitPrice": 1, "quantity": 1},
        {"productId": 1, "unitPrice": 1, "quantity": 1},
    ]
    r = client.put("/api/cart", json=dup)
    assert r.status_code == 422
    assert "duplicate productId 1" in r.json()["detail"]
    assert get_server_cart().is_empty


def test_metrics_exposition():
    client.put("/api/cart", json=[])
    r = client.get("/api/metrics")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/plain")
    text = r.text
    assert "# TYPE storefront_cart_mutations_total counter" in text
    assert "# TYPE storefront_cart_sync_duration_seconds histogram" in text

# storefront/app/integrations/storefront_api/client.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from storefront.app.core.config import settings
from storefront.app.models.cart import CartAggregate, parse_cart_payload
from storefront.app.models.catalog import ProductPage, parse_product_payload

logger = logging.getLogger(__name__)


class StorefrontApiError(RuntimeError):
    """Raised when the storefront API is unreachable or answers with something unusable."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StorefrontApiClient:
    """
    Async client for the storefront endpoints the cart depends on:
      - GET /api/products?page=N
      - GET /api/view_cart
      - PUT /api/cart

    A fresh AsyncClient is opened per call. Pass `transport` to route requests
    elsewhere (httpx.ASGITransport, httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.remote_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )

    async def _request(self, method: str, path: str, *, parse_json: bool = True, **kwargs: Any) -> Any:
        try:
            async with self._client() as client:
                r = await client.request(method, path, **kwargs)
                r.raise_for_status()
                if not parse_json or not r.content:
                    return None
                return r.json()
        except httpx.HTTPStatusError as e:
            raise StorefrontApiError(
                f"{method} {path} -> HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            raise StorefrontApiError(f"{method} {path} failed: {e!r}") from e
        except ValueError as e:  # body is not JSON
            raise StorefrontApiError(f"{method} {path} returned a non-JSON body") from e

    # ---------------- product feed ----------------

    async def fetch_products(self, page: int = 1) -> ProductPage:
        page = page if isinstance(page, int) and page > 0 else 1
        raw = await self._request("GET", "/api/products", params={"page": page})
        try:
            return parse_product_payload(raw, page=page)
        except ValidationError as e:
            raise StorefrontApiError(f"unexpected product feed shape: {e.error_count()} errors") from e

    # ---------------- cart ----------------

    async def fetch_cart(self) -> CartAggregate:
        raw = await self._request("GET", "/api/view_cart")
        try:
            return parse_cart_payload(raw)
        except ValidationError as e:
            raise StorefrontApiError(f"unexpected cart shape: {e.error_count()} errors") from e

    async def put_cart(self, items: List[Dict[str, Any]]) -> None:
        await self._request(
            "PUT",
            "/api/cart",
            json=items,
            headers={"Content-Type": "application/json"},
            parse_json=False,  # any 2xx is a success, whatever the body
        )


def _is_transient(exc: BaseException) -> bool:
    """Connection-level failures and 5xx are worth another try; 4xx and bad bodies are not."""
    if not isinstance(exc, StorefrontApiError):
        return False
    if exc.status_code is None:
        return isinstance(exc.__cause__, httpx.TransportError)
    return exc.status_code >= 500


async def fetch_cart_with_retry(client: StorefrontApiClient, *, attempts: int) -> CartAggregate:
    """GET /api/view_cart, retrying transient failures with exponential wait."""
    @retry(
        retry=retry_if_exception(_is_transient),
        wait=wait_exponential(multiplier=0.2, min=0.2, max=2),
        stop=stop_after_attempt(max(1, attempts)),
        reraise=True,
    )
    async def _fetch() -> CartAggregate:
        return await client.fetch_cart()

    return await _fetch()

from typing import List

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from storefront.app.models.cart import CartAggregate, LineItem

router = APIRouter(prefix="/api", tags=["cart"])

# One shared cart for the reference server; clients own the real state.
_SERVER_CART = CartAggregate.empty()


def get_server_cart() -> CartAggregate:
    return _SERVER_CART


def reset_server_cart(cart: CartAggregate = CartAggregate.empty()) -> None:
    """Useful for tests."""
    global _SERVER_CART
    _SERVER_CART = cart


@router.get("/view_cart")
def view_cart(shape: str = Query(default="envelope", description="envelope | list")):
    items = _SERVER_CART.to_wire()
    if shape == "list":
        return items
    return {"items": items, "count": _SERVER_CART.item_count}


@router.put("/cart")
def replace_cart(items: List[LineItem]):
    global _SERVER_CART
    try:
        _SERVER_CART = CartAggregate(items=tuple(items))
    except ValidationError as e:
        raise HTTPException(status_code=422, detail="; ".join(err["msg"] for err in e.errors()))
    return {"ok": True, "count": _SERVER_CART.item_count, "lines": len(_SERVER_CART.items)}

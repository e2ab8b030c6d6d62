# storefront/app/models/cart.py
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    computed_field,
    field_serializer,
    field_validator,
    model_validator,
)

from storefront.app.services.money import cart_subtotal, line_subtotal, to_decimal, units

UNTITLED = "Untitled"


class CartState(str, Enum):
    EMPTY = "empty"
    POPULATED = "populated"


# ----------------------------
# Line item
# ----------------------------

class LineItem(BaseModel):
    """
    One product entry in the cart.

    Serialized with camelCase keys (the local snapshot and PUT /api/cart body).
    On input it also accepts the shapes older storefront endpoints return:
    id/product_id, name, price/unit_price, image/picture/image_ref.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    product_id: int = Field(
        validation_alias=AliasChoices("productId", "product_id", "id"),
        serialization_alias="productId",
    )
    title: str = Field(default=UNTITLED, validation_alias=AliasChoices("title", "name"))
    unit_price: Decimal = Field(
        ge=0,
        validation_alias=AliasChoices("unitPrice", "unit_price", "price"),
        serialization_alias="unitPrice",
    )
    quantity: int = Field(ge=1)
    image_ref: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("imageRef", "image_ref", "image", "picture"),
        serialization_alias="imageRef",
    )

    @field_validator("title", mode="before")
    @classmethod
    def _title_or_untitled(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return UNTITLED
        return v

    @field_validator("unit_price", mode="before")
    @classmethod
    def _price_from_float(cls, v: Any) -> Any:
        # 19.99 must stay 19.99, not its binary neighbour
        if isinstance(v, float):
            return to_decimal(v)
        return v

    @field_validator("image_ref", mode="before")
    @classmethod
    def _blank_image_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_serializer("unit_price", when_used="json")
    def _price_as_number(self, v: Decimal) -> float:
        return float(v)

    @property
    def line_total(self) -> Decimal:
        return line_subtotal(self.unit_price, self.quantity)

    def with_quantity(self, quantity: int) -> "LineItem":
        return self.model_copy(update={"quantity": quantity})

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ----------------------------
# Aggregate
# ----------------------------

class CartAggregate(BaseModel):
    """
    Canonical cart state: ordered line items, unique by product_id.
    Totals are derived from items on every read.
    """
    model_config = ConfigDict(frozen=True, extra="ignore")

    items: Tuple[LineItem, ...] = ()

    @model_validator(mode="after")
    def _product_ids_unique(self) -> "CartAggregate":
        seen = set()
        for item in self.items:
            if item.product_id in seen:
                raise ValueError(f"duplicate productId {item.product_id} in cart items")
            seen.add(item.product_id)
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def subtotal(self) -> Decimal:
        return cart_subtotal(self.items)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def item_count(self) -> int:
        return units(self.items)

    @property
    def state(self) -> CartState:
        return CartState.EMPTY if not self.items else CartState.POPULATED

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, product_id: int) -> Optional[LineItem]:
        return next((it for it in self.items if it.product_id == product_id), None)

    def to_wire(self) -> List[Dict[str, Any]]:
        """The item array as stored locally and sent to PUT /api/cart."""
        return [it.to_wire() for it in self.items]

    @classmethod
    def empty(cls) -> "CartAggregate":
        return cls(items=())

    @classmethod
    def from_wire(cls, items: Any) -> "CartAggregate":
        """Validate a stored/sent item array. Raises pydantic.ValidationError."""
        return cls(items=_ITEM_ARRAY.validate_python(items))


_ITEM_ARRAY = TypeAdapter(Tuple[LineItem, ...])


# ----------------------------
# GET /api/view_cart shapes
# ----------------------------

class CartEnvelope(BaseModel):
    """`{items: [...], count}`; count is informational only."""
    model_config = ConfigDict(extra="ignore")

    items: List[LineItem]
    count: Optional[int] = None


CartPayload = Union[List[LineItem], CartEnvelope]
_CART_PAYLOAD = TypeAdapter(CartPayload)


def parse_cart_payload(raw: Any) -> CartAggregate:
    """
    Resolve either known response shape (bare array or envelope) to an aggregate.
    Raises pydantic.ValidationError on anything else.
    """
    parsed = _CART_PAYLOAD.validate_python(raw)
    items = parsed.items if isinstance(parsed, CartEnvelope) else parsed
    return CartAggregate(items=tuple(items))


# ----------------------------
# Product -> line item
# ----------------------------

def as_line_item(product: Any, quantity: int) -> LineItem:
    """
    Build the line item `add` appends for a new product.
    Accepts a LineItem, anything with ``to_line_item`` (catalog Product), or a
    mapping in either product or line-item shape.
    """
    if isinstance(product, LineItem):
        return product.with_quantity(quantity)
    to_line_item = getattr(product, "to_line_item", None)
    if callable(to_line_item):
        return to_line_item(quantity)
    if isinstance(product, Mapping):
        return LineItem.model_validate({**product, "quantity": quantity})
    raise TypeError(f"cannot build a cart line from {type(product).__name__}")

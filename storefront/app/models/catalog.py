from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from storefront.app.models.cart import UNTITLED, LineItem
from storefront.app.services.money import ZERO, to_decimal


class Product(BaseModel):
    """Product as served by GET /api/products. Unknown keys are kept."""
    model_config = ConfigDict(frozen=True, extra="allow")

    id: int
    name: str = UNTITLED
    description: Optional[str] = None
    price: Decimal = Field(default=ZERO, ge=0)
    picture: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _name_or_untitled(cls, v: Any) -> Any:
        return UNTITLED if v is None or v == "" else v

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, v: Any) -> Any:
        if v is None:
            return ZERO
        if isinstance(v, float):
            return to_decimal(v)
        return v

    def to_line_item(self, quantity: int = 1) -> LineItem:
        return LineItem(
            product_id=self.id,
            title=self.name,
            unit_price=self.price,
            quantity=quantity,
            image_ref=self.picture or None,
        )


class ProductFeed(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: List[Product]


ProductPayload = Union[List[Product], ProductFeed]
_PRODUCT_PAYLOAD = TypeAdapter(ProductPayload)


@dataclass(frozen=True)
class ProductPage:
    page: int
    products: List[Product] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.products)


def parse_product_payload(raw: Any, *, page: int = 1) -> ProductPage:
    """`{data: [...]}` or a bare array; raises pydantic.ValidationError otherwise."""
    parsed = _PRODUCT_PAYLOAD.validate_python(raw)
    products = parsed.data if isinstance(parsed, ProductFeed) else parsed
    return ProductPage(page=page, products=list(products))

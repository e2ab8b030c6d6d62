from fastapi import APIRouter, Query

from storefront.app.core.config import settings

router = APIRouter(prefix="/api", tags=["products"])

MOCK_PRODUCTS = [
    {"id": 1, "name": "Classic Tee", "description": "Heavyweight cotton crew neck.", "price": 19.99, "picture": "/assets/tee.png"},
    {"id": 2, "name": "Canvas Tote", "description": "Natural canvas, inner pocket.", "price": 14.99, "picture": "/assets/tote.png"},
    {"id": 3, "name": "Silk Pillowcase", "description": "Mulberry silk, cool and gentle.", "price": 34.00, "picture": "/assets/pillowcase.png"},
    {"id": 4, "name": "Aromatic Candle", "description": "Hand-poured soy wax.", "price": 18.50, "picture": "/assets/candle.png"},
    {"id": 5, "name": "Ceramic Mug", "description": "Stoneware, 350 ml.", "price": 12.00, "picture": "/assets/mug.png"},
    {"id": 6, "name": "Wool Beanie", "description": "Merino blend.", "price": 22.50, "picture": "/assets/beanie.png"},
    {"id": 7, "name": "Linen Napkins", "description": "Set of four.", "price": 16.00},
    {"id": 8, "name": "Notebook A5", "description": "Dotted, lay-flat binding.", "price": 9.75, "picture": "/assets/notebook.png"},
    {"id": 9, "name": "Desk Plant", "description": "Low-light pothos in a clay pot.", "price": 27.00, "picture": "/assets/plant.png"},
    {"id": 10, "name": "Water Bottle", "description": "Insulated steel, 750 ml.", "price": 24.90, "picture": "/assets/bottle.png"},
    {"id": 11, "name": "Sticker Pack", "price": 4.50},
    {"id": 12, "name": "Gift Card", "description": "Redeemable online.", "price": 25.00},
    {"id": 13, "name": "Enamel Pin", "description": "Hard enamel, gold plating.", "price": 8.00, "picture": "/assets/pin.png"},
]


@router.get("/products")
def list_products(page: int = Query(default=1, description="1-based page number")):
    page = max(1, page)
    per_page = settings.products_page_size
    start = (page - 1) * per_page
    return {
        "data": MOCK_PRODUCTS[start:start + per_page],
        "page": page,
        "per_page": per_page,
        "total": len(MOCK_PRODUCTS),
    }

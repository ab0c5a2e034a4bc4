# app/domain/stock.py
from typing import Optional

from app.domain.errors import InsufficientStock, InvalidQuantity, VariantUnavailable
from app.domain.schemas import CatalogProduct


def normalize_color(color: Optional[str]) -> str:
    return (color or "").strip()


def check_quantity(quantity: int):
    if quantity < 1:
        raise InvalidQuantity("Quantity must be at least 1")


def check_variant(product: CatalogProduct, color: Optional[str]) -> str:
    """Returns the normalized color; "" when no variant was requested."""
    color = normalize_color(color)
    if not color:
        return ""
    match = next((c for c in product.colors if c.name == color), None)
    if match is None:
        raise VariantUnavailable(f"Color '{color}' does not exist for product {product.id}")
    if not match.in_stock:
        raise VariantUnavailable(f"Color '{color}' is out of stock for product {product.id}")
    return color


def check_stock(product: CatalogProduct, quantity: int, product_id: str | None = None):
    if quantity > product.count_in_stock:
        raise InsufficientStock(product_id or product.id, quantity, product.count_in_stock)

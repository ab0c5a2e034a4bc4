# app/domain/pricing.py
"""
Pricing calculator shared by the cart page and order placement.

Pure functions over line items: anything exposing ``price``, ``discount_price``,
``gst_rate`` and ``quantity`` (cart rows, order rows, ``PricedLine``).
Money is Decimal, rounded half-up to paise.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from app.domain.schemas import PriceBreakdown
from app.utils.settings import FLAT_SHIPPING_FEE, FREE_SHIPPING_THRESHOLD, GST_RATE

ZERO = Decimal("0.00")
_CENT = Decimal("0.01")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(_CENT, rounding=ROUND_HALF_UP)


def unit_price(line) -> Decimal:
    """Discount price when set, non-zero and lower than list price, else list price."""
    price = Decimal(str(line.price))
    discount = line.discount_price
    if discount is not None:
        discount = Decimal(str(discount))
        if ZERO < discount < price:
            return discount
    return price


def gst_rate(line) -> Decimal:
    rate = getattr(line, "gst_rate", None)
    return Decimal(str(rate)) if rate is not None else GST_RATE


def shipping_for(subtotal: Decimal) -> Decimal:
    # strictly above the threshold ships free: 499.00 still pays the flat fee
    if subtotal > FREE_SHIPPING_THRESHOLD:
        return ZERO
    return money(FLAT_SHIPPING_FEE)


def calculate(lines: Iterable) -> PriceBreakdown:
    lines = list(lines)
    if not lines:
        return PriceBreakdown(items_price=ZERO, tax_price=ZERO, shipping_price=ZERO, total_price=ZERO)

    subtotal = Decimal("0")
    tax = Decimal("0")
    for line in lines:
        line_total = unit_price(line) * line.quantity
        subtotal += line_total
        tax += line_total * gst_rate(line) / Decimal("100")

    items_price = money(subtotal)
    tax_price = money(tax)
    shipping_price = shipping_for(items_price)

    return PriceBreakdown(
        items_price=items_price,
        tax_price=tax_price,
        shipping_price=shipping_price,
        total_price=items_price + tax_price + shipping_price,
    )

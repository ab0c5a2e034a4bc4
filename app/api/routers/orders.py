# app/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends

from app.api.deps import get_cart_service, get_order_service, require_user
from app.api.errors import to_http
from app.domain import pricing
from app.domain.errors import StorefrontError, ValidationFailed
from app.domain.schemas import (
    CartOwner,
    OrderCreate,
    OrderOut,
    PaymentResultIn,
    PriceBreakdown,
    TaxQuoteIn,
)
from app.services.cart_service import CartService
from app.services.identity import Identity
from app.services.order_service import OrderService
from app.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderOut, status_code=201)
def create_order(
    payload: OrderCreate,
    identity: Identity = Depends(require_user),
    svc: OrderService = Depends(get_order_service),
    carts: CartService = Depends(get_cart_service),
):
    """
    Places an order from the submitted cart snapshot.
    Prices are recomputed server-side; the caller's cart is cleared only
    after the order exists.
    """
    try:
        order = svc.place_order(
            identity.user_id,
            payload.order_items,
            payload.shipping_address,
            payload.payment_method,
            client_prices=payload.client_prices(),
        )
    except StorefrontError as e:
        raise to_http(e)

    try:
        carts.clear_cart(CartOwner(user_id=identity.user_id))
    except StorefrontError as e:
        # the order stands, a leftover cart is only an annoyance
        logger.error(f"Order {order['order_number']} placed but cart not cleared: {e}")

    return order


@router.post("/calculate-tax", response_model=PriceBreakdown)
def calculate_tax(payload: TaxQuoteIn):
    """Price breakdown for a list of lines, same formula as checkout."""
    if not payload.items:
        raise to_http(ValidationFailed("No order items provided"))
    return pricing.calculate(payload.items)


@router.get("/myorders", response_model=List[OrderOut])
def my_orders(
    identity: Identity = Depends(require_user),
    svc: OrderService = Depends(get_order_service),
):
    return svc.list_orders_for_user(identity.user_id)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: str,
    identity: Identity = Depends(require_user),
    svc: OrderService = Depends(get_order_service),
):
    try:
        return svc.get_order(order_id, requester=identity)
    except StorefrontError as e:
        raise to_http(e)


@router.put("/{order_id}/pay", response_model=OrderOut)
def pay_order(
    order_id: str,
    payload: PaymentResultIn,
    identity: Identity = Depends(require_user),
    svc: OrderService = Depends(get_order_service),
):
    """Payment processor confirmation; repeated calls overwrite the result."""
    try:
        return svc.mark_paid(order_id, payload.model_dump(), requester=identity)
    except StorefrontError as e:
        raise to_http(e)

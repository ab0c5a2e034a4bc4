# app/api/routers/admin.py
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.api.deps import get_order_service, require_admin
from app.api.errors import to_http
from app.domain.errors import StorefrontError
from app.domain.schemas import DeliverIn, OrderOut, OrderPage, PaymentResultIn
from app.services.order_service import OrderService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/orders", response_model=OrderPage)
def list_orders(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    svc: OrderService = Depends(get_order_service),
):
    return svc.list_orders(page, page_size)


@router.put("/orders/{order_id}/deliver", response_model=OrderOut)
def deliver_order(
    order_id: str,
    payload: Optional[DeliverIn] = None,
    svc: OrderService = Depends(get_order_service),
):
    tracking = payload.tracking_info if payload and payload.tracking_info else None
    try:
        return svc.mark_delivered(
            order_id,
            tracking_number=tracking.number if tracking else None,
            tracking_url=tracking.url if tracking else None,
        )
    except StorefrontError as e:
        raise to_http(e)


@router.put("/orders/{order_id}/pay", response_model=OrderOut)
def collect_payment(
    order_id: str,
    payload: Optional[PaymentResultIn] = None,
    svc: OrderService = Depends(get_order_service),
):
    """Cash collected at the door for cash-on-delivery orders."""
    result = payload.model_dump() if payload else {"status": "cash_collected"}
    try:
        return svc.mark_paid(order_id, result)
    except StorefrontError as e:
        raise to_http(e)

# app/services/order_service.py
import math
import secrets
import uuid
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.data.models.order import OrderModel
from app.data.models.order_item import OrderItemModel
from app.domain import pricing
from app.domain.errors import (
    AccessDenied,
    DeliveryNotAllowed,
    EmptyOrder,
    InvalidAddress,
    OrderNotFound,
    ValidationFailed,
)
from app.domain.schemas import OrderItemIn, PriceBreakdown, ShippingAddressIn
from app.domain.stock import check_quantity, check_stock, check_variant
from app.repos.order_repo import OrderRepo
from app.services.identity import Identity
from app.services.notification_service import NotificationService
from app.services.product_client import ProductClient
from app.utils.clock import as_utc, utcnow
from app.utils.settings import GST_RATE
from app.utils.logging import get_logger

logger = get_logger(__name__)

CASH_ON_DELIVERY = "cash_on_delivery"
_ADDRESS_FIELDS = ("street", "city", "state", "pincode")
ORDER_NUMBER_ATTEMPTS = 3


class OrderService:
    """
    Order lifecycle: placement from a cart snapshot, then payment and delivery.

    Placement re-prices every line from the catalog, so the stored order never
    depends on prices frozen in the cart. Paid and delivered flags only move
    forward.
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        notification_service: NotificationService | None = None,
    ):
        self.repo = OrderRepo(db)
        self.product_client = product_client
        self.notification_service = notification_service or NotificationService()

    # =====================================================
    # COMMANDS
    # =====================================================
    def place_order(
        self,
        user_id: str,
        items: Iterable[OrderItemIn],
        shipping_address: ShippingAddressIn,
        payment_method: str,
        client_prices: Optional[Dict[str, Optional[Decimal]]] = None,
    ) -> Dict[str, Any]:
        """
        Creates an order from the snapshot the checkout passed in.

        Does not touch the cart: clearing it after success is the caller's job,
        so a failed placement leaves the cart for a retry.
        """
        items = list(items)
        if not items:
            raise EmptyOrder("No order items")

        address = self._validate_address(shipping_address)
        payment_method = (payment_method or "").strip()
        if not payment_method:
            raise ValidationFailed("Payment method is required")

        # last stock check before commit; no reservation, a narrow oversell race remains
        lines = [self._snapshot_line(product_id, color, quantity)
                 for (product_id, color), quantity in self._combine(items).items()]

        prices = pricing.calculate(lines)
        self._compare_client_prices(user_id, prices, client_prices)

        now = utcnow()
        prepaid = payment_method != CASH_ON_DELIVERY

        order = OrderModel(
            id=str(uuid.uuid4()),
            order_number=self._new_order_number(),
            user_id=user_id,
            payment_method=payment_method,
            items_price=prices.items_price,
            tax_price=prices.tax_price,
            shipping_price=prices.shipping_price,
            total_price=prices.total_price,
            is_paid=prepaid,
            paid_at=now if prepaid else None,
            is_delivered=False,
            created_at=now,
            items=lines,
            **address,
        )

        created = self._insert(order)

        logger.info(
            f"Order {created.order_number} ({created.id}) placed by user {user_id}, "
            f"total {created.total_price}, payment {payment_method}"
        )

        self._notify(self.notification_service.order_placed, user_id, created.order_number)

        return self._to_dict(created)

    def mark_paid(
        self,
        order_id: str,
        payment_result: Dict[str, Any],
        requester: Identity | None = None,
    ) -> Dict[str, Any]:
        """
        Records payment confirmation. Repeated webhooks overwrite the result and
        timestamp instead of failing.
        """
        order = self._get_authorized(order_id, requester)

        already_paid = order.is_paid
        order.is_paid = True
        order.paid_at = utcnow()
        order.payment_result = payment_result

        saved = self.repo.save(order)

        if already_paid:
            logger.info(f"Order {saved.order_number} payment confirmation repeated, result overwritten")
        else:
            logger.info(f"Order {saved.order_number} marked paid")
            self._notify(self.notification_service.order_paid, saved.user_id, saved.order_number)

        return self._to_dict(saved)

    def mark_delivered(
        self,
        order_id: str,
        tracking_number: Optional[str] = None,
        tracking_url: Optional[str] = None,
    ) -> Dict[str, Any]:
        order = self.repo.get_order(order_id)

        if not order:
            raise OrderNotFound(f"Order {order_id} not found")

        # cash on delivery may be delivered before the cash is booked
        if not order.is_paid and order.payment_method != CASH_ON_DELIVERY:
            raise DeliveryNotAllowed(
                f"Order {order.order_number} is not paid and cannot be delivered"
            )

        first_delivery = not order.is_delivered
        if first_delivery:
            order.is_delivered = True
            order.delivered_at = utcnow()

        if tracking_number:
            order.tracking_number = tracking_number
        if tracking_url:
            order.tracking_url = tracking_url

        saved = self.repo.save(order)

        if first_delivery:
            logger.info(f"Order {saved.order_number} marked delivered")
            self._notify(self.notification_service.order_delivered, saved.user_id, saved.order_number)
        else:
            logger.info(f"Order {saved.order_number} tracking info updated")

        return self._to_dict(saved)

    # =====================================================
    # QUERIES
    # =====================================================
    def get_order(self, order_id: str, requester: Identity | None = None) -> Dict[str, Any]:
        return self._to_dict(self._get_authorized(order_id, requester))

    def list_orders_for_user(self, user_id: str) -> List[Dict[str, Any]]:
        return [self._to_dict(o) for o in self.repo.list_for_user(user_id)]

    def list_orders(self, page: int = 1, page_size: int = 20) -> Dict[str, Any]:
        page = max(page, 1)
        page_size = min(max(page_size, 1), 100)
        orders, total = self.repo.list_page(page, page_size)
        return {
            "orders": [self._to_dict(o) for o in orders],
            "page": page,
            "pages": math.ceil(total / page_size),
            "total": total,
        }

    # =====================================================
    # helpers
    # =====================================================
    def _get_authorized(self, order_id: str, requester: Identity | None) -> OrderModel:
        order = self.repo.get_order(order_id)

        if not order:
            raise OrderNotFound(f"Order {order_id} not found")

        if requester is not None and not requester.is_admin and order.user_id != requester.user_id:
            raise AccessDenied("No access to this order")

        return order

    @staticmethod
    def _validate_address(address: ShippingAddressIn) -> Dict[str, str]:
        values = {f: (getattr(address, f, "") or "").strip() for f in _ADDRESS_FIELDS}
        missing = [f for f, v in values.items() if not v]
        if missing:
            raise InvalidAddress(f"Shipping address is missing: {', '.join(missing)}")
        return values

    @staticmethod
    def _combine(items: List[OrderItemIn]) -> Dict[tuple, int]:
        # the same product/color twice in one checkout becomes one line
        combined: Dict[tuple, int] = {}
        for item in items:
            check_quantity(item.quantity)
            key = (item.product_id, (item.color or "").strip())
            combined[key] = combined.get(key, 0) + item.quantity
        return combined

    def _snapshot_line(self, product_id: str, color: str, quantity: int) -> OrderItemModel:
        product = self.product_client.fetch_product(product_id)
        color = check_variant(product, color)
        check_stock(product, quantity, product_id)

        return OrderItemModel(
            product_id=product_id,
            color=color,
            name=product.name,
            image=product.image,
            price=product.price,
            discount_price=product.discount_price,
            gst_rate=product.gst_rate if product.gst_rate is not None else GST_RATE,
            quantity=quantity,
        )

    @staticmethod
    def _compare_client_prices(
        user_id: str,
        prices: PriceBreakdown,
        client_prices: Optional[Dict[str, Optional[Decimal]]],
    ):
        # client totals are never stored, a mismatch is only worth a warning
        for field, sent in (client_prices or {}).items():
            if sent is None:
                continue
            expected = getattr(prices, field)
            if pricing.money(sent) != expected:
                logger.warning(
                    f"Client {field}={sent} differs from server {expected} for user {user_id}"
                )

    def _new_order_number(self) -> str:
        for _ in range(20):
            candidate = f"ORD-{100000 + secrets.randbelow(900000)}"
            if not self.repo.order_number_taken(candidate):
                return candidate
        raise RuntimeError("Could not allocate a free order number")

    def _insert(self, order: OrderModel) -> OrderModel:
        # the free-number check and the insert are not atomic, a racing placement may win the number
        for attempt in range(1, ORDER_NUMBER_ATTEMPTS + 1):
            try:
                return self.repo.create_order(order)
            except IntegrityError:
                self.repo.rollback()
                if attempt == ORDER_NUMBER_ATTEMPTS:
                    raise
                logger.warning(f"Order number {order.order_number} taken at commit, retrying")
                order.order_number = self._new_order_number()

    @staticmethod
    def _notify(send, user_id: str, order_number: str):
        # the order is already committed, a lost notification must not fail the request
        try:
            send(user_id, order_number)
        except Exception as e:
            logger.error(f"Notification for order {order_number} not sent: {e}")

    @staticmethod
    def _to_dict(order: OrderModel) -> Dict[str, Any]:
        return {
            "id": order.id,
            "order_number": order.order_number,
            "user_id": order.user_id,
            "items": [
                {
                    "product_id": i.product_id,
                    "color": i.color or None,
                    "name": i.name,
                    "image": i.image,
                    "unit_price": pricing.unit_price(i),
                    "gst_rate": i.gst_rate,
                    "quantity": i.quantity,
                }
                for i in order.items
            ],
            "shipping_address": {f: getattr(order, f) for f in _ADDRESS_FIELDS},
            "payment_method": order.payment_method,
            "items_price": order.items_price,
            "tax_price": order.tax_price,
            "shipping_price": order.shipping_price,
            "total_price": order.total_price,
            "is_paid": order.is_paid,
            "paid_at": as_utc(order.paid_at),
            "payment_result": order.payment_result,
            "is_delivered": order.is_delivered,
            "delivered_at": as_utc(order.delivered_at),
            "tracking_number": order.tracking_number,
            "tracking_url": order.tracking_url,
            "created_at": as_utc(order.created_at),
        }

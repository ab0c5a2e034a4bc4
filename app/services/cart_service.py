from datetime import timedelta
from typing import Dict, Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel
from app.domain import pricing
from app.domain.errors import (
    CatalogUnavailable,
    ConcurrencyConflict,
    LineNotFound,
    ProductNotFound,
)
from app.domain.schemas import CartOwner, CatalogProduct
from app.domain.stock import check_quantity, check_stock, check_variant, normalize_color
from app.repos.cart_repo import CartRepo
from app.services.product_client import ProductClient
from app.services.lock_service import LockService, merge_lock_key
from app.utils.clock import as_utc, utcnow
from app.utils.retry import conflict_retry
from app.utils.settings import (
    CART_PRICE_REFRESH_HOURS,
    GST_RATE,
    GUEST_CART_TTL_SECONDS,
    MERGE_LOCK_TTL_SECONDS,
)
from app.utils.logging import get_logger

logger = get_logger(__name__)


class CartService:
    """
    Cart use cases, one cart per user or guest session.
    Commands (add, update, remove, clear, merge) change state under optimistic
    locking on the cart version; the query (get) only reads, apart from the
    periodic price refresh.
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        lock_service: LockService,
    ):
        self.repo = CartRepo(db)
        self.product_client = product_client
        self.lock_service = lock_service

    # query
    def get_cart(self, owner: CartOwner) -> Dict[str, Any]:
        cart = self.repo.get_cart(owner)

        # no cart yet is a valid state
        if not cart:
            return self._to_dict(owner, None)

        if cart.items and self._prices_stale(cart):
            cart = self._refresh_prices(owner, cart)

        return self._to_dict(owner, cart)

    # commands
    @conflict_retry()
    def add_item(
        self,
        owner: CartOwner,
        product_id: str,
        quantity: int,
        color: Optional[str] = None,
    ) -> Dict[str, Any]:
        check_quantity(quantity)

        logger.info(f"Fetching product {product_id} from catalog")
        product = self.product_client.fetch_product(product_id)
        color = check_variant(product, color)

        cart = self.repo.get_cart(owner)
        line = self.repo.find_line(cart, product_id, color) if cart else None

        # existing line grows, the stock check covers the whole new quantity
        new_quantity = (line.quantity if line else 0) + quantity
        check_stock(product, new_quantity, product_id)

        if cart is None:
            cart = self._create_cart(owner)

        if line:
            logger.info(
                f"Product {product_id} already in cart {owner}, quantity "
                f"{line.quantity} -> {new_quantity}"
            )
            # price stays frozen at the first add
            line.quantity = new_quantity
        else:
            logger.info(f"Adding product {product_id} ({color or 'no variant'}) to cart {owner}")
            line = CartItemModel(product_id=product_id, color=color, quantity=quantity)
            self._snapshot(line, product)
            self.repo.add_line(cart, line)

        self._save(owner, cart)
        return self._to_dict(owner, self.repo.get_cart(owner))

    @conflict_retry()
    def update_quantity(
        self,
        owner: CartOwner,
        product_id: str,
        quantity: int,
        color: Optional[str] = None,
    ) -> Dict[str, Any]:
        color = normalize_color(color)
        cart = self.repo.get_cart(owner)
        line = self.repo.find_line(cart, product_id, color) if cart else None

        if line is None:
            raise LineNotFound(f"Product {product_id} is not in the cart")

        if quantity <= 0:
            logger.info(f"Quantity {quantity} for product {product_id}, removing line from cart {owner}")
            self.repo.remove_line(cart, line)
        else:
            product = self.product_client.fetch_product(product_id)
            # over stock is rejected, never clamped
            check_stock(product, quantity, product_id)
            logger.info(f"Setting quantity of product {product_id} in cart {owner} to {quantity}")
            line.quantity = quantity

        self._save(owner, cart)
        return self._to_dict(owner, self.repo.get_cart(owner))

    @conflict_retry()
    def remove_item(
        self,
        owner: CartOwner,
        product_id: str,
        color: Optional[str] = None,
    ) -> Dict[str, Any]:
        color = normalize_color(color)
        cart = self.repo.get_cart(owner)
        line = self.repo.find_line(cart, product_id, color) if cart else None

        # removing something that is not there is a successful no-op
        if line is None:
            return self._to_dict(owner, cart)

        logger.info(f"Removing product {product_id} from cart {owner}")
        self.repo.remove_line(cart, line)
        self._save(owner, cart)
        return self._to_dict(owner, self.repo.get_cart(owner))

    @conflict_retry()
    def clear_cart(self, owner: CartOwner) -> Dict[str, Any]:
        cart = self.repo.get_cart(owner)
        if cart is None:
            return self._to_dict(owner, None)

        logger.info(f"Clearing cart {owner}")
        if self.repo.delete_cart(cart.id, cart.version) == 0:
            self.repo.rollback()
            raise ConcurrencyConflict("Cart was modified by another request")
        self.repo.commit()
        return self._to_dict(owner, None)

    def merge_guest_cart(self, user_id: str, session_id: str) -> Dict[str, Any]:
        """
        Folds the guest cart into the user's cart and deletes the guest cart.

        Both writes share one transaction; the Redis lock keeps two logins of the
        same guest session from merging concurrently. A missing or empty guest
        cart makes this a no-op, so a retried merge is safe.
        """
        with self.lock_service.hold(merge_lock_key(session_id), MERGE_LOCK_TTL_SECONDS):
            return self._merge(CartOwner(user_id=user_id), CartOwner(session_id=session_id))

    @conflict_retry()
    def _merge(self, user: CartOwner, guest: CartOwner) -> Dict[str, Any]:
        guest_cart = self.repo.get_cart(guest)

        if guest_cart is None:
            logger.info(f"No guest cart {guest} to merge into {user}")
            return self.get_cart(user)

        merged = len(guest_cart.items)
        target = self.repo.get_cart(user)
        if merged:
            if target is None:
                target = self._create_cart(user)

            for guest_line in guest_cart.items:
                line = self.repo.find_line(target, guest_line.product_id, guest_line.color)
                if line:
                    line.quantity += guest_line.quantity
                else:
                    self.repo.add_line(target, self._copy_line(guest_line))

            # copied lines carry the guest snapshot, the older pricing date decides the next refresh
            priced_at = min(as_utc(target.priced_at), as_utc(guest_cart.priced_at))
            self._stage_version_bump(user, target, {"priced_at": priced_at})

        if self.repo.delete_cart(guest_cart.id, guest_cart.version) == 0:
            self.repo.rollback()
            raise ConcurrencyConflict("Guest cart was modified during merge")

        self.repo.commit()
        logger.info(f"Merged {merged} line(s) from {guest} into {user}")
        return self._to_dict(user, self.repo.get_cart(user))

    # helpers
    def _create_cart(self, owner: CartOwner) -> CartModel:
        now = utcnow()
        cart = CartModel(
            user_id=owner.user_id,
            session_id=owner.session_id,
            version=1,
            expires_at=self._expiry(owner, now),
            priced_at=now,
            created_at=now,
            updated_at=now,
        )
        try:
            created = self.repo.create_cart(cart)
        except IntegrityError:
            # another request created this owner's cart first
            self.repo.rollback()
            raise ConcurrencyConflict("Cart was created by another request")
        logger.info(f"Created cart {created.id} for {owner}")
        return created

    def _stage_version_bump(self, owner: CartOwner, cart: CartModel, extra: dict | None = None):
        now = utcnow()
        new_data = {
            "version": cart.version + 1,
            "updated_at": now,
            "expires_at": self._expiry(owner, now),
        }
        new_data.update(extra or {})

        try:
            self.repo.flush()
            # UPDATE ... WHERE id = ? AND version = ?; 0 rows means someone else won
            rowcount = self.repo.update_cart_version(cart.id, cart.version, new_data)
        except IntegrityError:
            self.repo.rollback()
            raise ConcurrencyConflict("Cart line was written by another request")

        if rowcount == 0:
            self.repo.rollback()
            logger.warning(f"Optimistic lock lost on cart {owner} at version {cart.version}")
            raise ConcurrencyConflict("Cart was modified by another request")

    def _save(self, owner: CartOwner, cart: CartModel, extra: dict | None = None):
        self._stage_version_bump(owner, cart, extra)
        self.repo.commit()

    @staticmethod
    def _expiry(owner: CartOwner, now):
        # user carts live until cleared or ordered
        if owner.is_guest:
            return now + timedelta(seconds=GUEST_CART_TTL_SECONDS)
        return None

    @staticmethod
    def _snapshot(line: CartItemModel, product: CatalogProduct):
        line.name = product.name
        line.image = product.image
        line.price = product.price
        line.discount_price = product.discount_price
        line.gst_rate = product.gst_rate if product.gst_rate is not None else GST_RATE

    @staticmethod
    def _copy_line(line: CartItemModel) -> CartItemModel:
        return CartItemModel(
            product_id=line.product_id,
            color=line.color,
            name=line.name,
            image=line.image,
            price=line.price,
            discount_price=line.discount_price,
            gst_rate=line.gst_rate,
            quantity=line.quantity,
        )

    @staticmethod
    def _prices_stale(cart: CartModel) -> bool:
        return as_utc(cart.priced_at) < utcnow() - timedelta(hours=CART_PRICE_REFRESH_HOURS)

    def _refresh_prices(self, owner: CartOwner, cart: CartModel) -> CartModel:
        logger.info(f"Refreshing prices of cart {owner}")
        try:
            for line in cart.items:
                try:
                    product = self.product_client.fetch_product(line.product_id)
                except ProductNotFound:
                    # product removed from catalog, keep the snapshot
                    logger.warning(f"Product {line.product_id} in cart {owner} no longer exists")
                    continue
                self._snapshot(line, product)
            self._save(owner, cart, {"priced_at": utcnow()})
        except CatalogUnavailable:
            self.repo.rollback()
            logger.warning(f"Catalog unavailable, serving cart {owner} with old prices")
        except ConcurrencyConflict:
            logger.warning(f"Cart {owner} changed during price refresh, serving latest state")
        return self.repo.get_cart(owner)

    @staticmethod
    def _to_dict(owner: CartOwner, cart: CartModel | None) -> Dict[str, Any]:
        items = list(cart.items) if cart else []
        return {
            "user_id": owner.user_id,
            "session_id": owner.session_id,
            "items": [
                {
                    "product_id": i.product_id,
                    "color": i.color or None,
                    "name": i.name,
                    "image": i.image,
                    "price": i.price,
                    "discount_price": i.discount_price,
                    "unit_price": pricing.unit_price(i),
                    "gst_rate": i.gst_rate,
                    "quantity": i.quantity,
                }
                for i in items
            ],
            "prices": pricing.calculate(items),
            "expires_at": as_utc(cart.expires_at) if cart else None,
            "updated_at": as_utc(cart.updated_at) if cart else None,
        }

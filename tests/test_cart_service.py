from datetime import timedelta
from decimal import Decimal

import pytest

from app.data.database import SessionLocal
from app.data.models.cart import CartModel
from app.domain.errors import (
    CatalogUnavailable,
    InsufficientStock,
    InvalidQuantity,
    LineNotFound,
    ProductNotFound,
    VariantUnavailable,
)
from app.domain.schemas import CartOwner
from app.services.cart_service import CartService
from app.utils.clock import utcnow

USER = CartOwner(user_id="user-1")
GUEST = CartOwner(session_id="guest-1")


def lines(cart):
    return {(i["product_id"], i["color"]): i["quantity"] for i in cart["items"]}


class TestGetCart:
    def test_missing_cart_is_empty_not_error(self, cart_service):
        cart = cart_service.get_cart(USER)

        assert cart["items"] == []
        assert cart["user_id"] == "user-1"
        assert cart["prices"].total_price == Decimal("0")

    def test_cart_totals_use_pricing_calculator(self, cart_service):
        cart_service.add_item(USER, "P1", 2)

        prices = cart_service.get_cart(USER)["prices"]

        assert prices.items_price == Decimal("1998.00")
        assert prices.tax_price == Decimal("359.64")
        assert prices.shipping_price == Decimal("0.00")
        assert prices.total_price == Decimal("2357.64")


class TestAddItem:
    def test_new_line_snapshots_product(self, cart_service):
        cart = cart_service.add_item(GUEST, "CASE", 1, color="Black")

        (item,) = cart["items"]
        assert item["name"] == "Product CASE"
        assert item["image"] == "/images/CASE.jpg"
        assert item["price"] == Decimal("599")
        assert item["unit_price"] == Decimal("449")
        assert item["color"] == "Black"

    def test_same_product_and_variant_increments(self, cart_service):
        cart_service.add_item(USER, "P1", 2)
        cart = cart_service.add_item(USER, "P1", 3)

        assert lines(cart) == {("P1", None): 5}

    def test_different_variants_are_separate_lines(self, catalog, cart_service):
        catalog.set("CASE", colors=[
            {"name": "Black", "inStock": True},
            {"name": "Blue", "inStock": True},
        ])
        cart_service.add_item(USER, "CASE", 1, color="Black")
        cart = cart_service.add_item(USER, "CASE", 2, color="Blue")

        assert lines(cart) == {("CASE", "Black"): 1, ("CASE", "Blue"): 2}

    def test_unknown_product(self, cart_service):
        with pytest.raises(ProductNotFound):
            cart_service.add_item(USER, "NOPE", 1)

    def test_over_stock(self, cart_service):
        with pytest.raises(InsufficientStock):
            cart_service.add_item(USER, "CASE", 6, color="Black")

    def test_increment_rechecks_stock_and_keeps_cart(self, cart_service):
        cart_service.add_item(USER, "CASE", 4, color="Black")

        with pytest.raises(InsufficientStock) as err:
            cart_service.add_item(USER, "CASE", 2, color="Black")

        assert err.value.available == 5
        assert lines(cart_service.get_cart(USER)) == {("CASE", "Black"): 4}

    def test_out_of_stock_variant(self, cart_service):
        with pytest.raises(VariantUnavailable):
            cart_service.add_item(USER, "CASE", 1, color="Red")

    def test_unknown_variant(self, cart_service):
        with pytest.raises(VariantUnavailable):
            cart_service.add_item(USER, "P1", 1, color="Gold")

    def test_quantity_below_one(self, cart_service):
        with pytest.raises(InvalidQuantity):
            cart_service.add_item(USER, "P1", 0)

    def test_failed_add_creates_no_cart(self, db, cart_service):
        with pytest.raises(InsufficientStock):
            cart_service.add_item(GUEST, "P1", 11)

        assert db.query(CartModel).count() == 0

    def test_price_frozen_on_increment(self, catalog, cart_service):
        cart_service.add_item(USER, "P1", 1)
        catalog.set("P1", price=1200)

        cart = cart_service.add_item(USER, "P1", 1)

        assert cart["items"][0]["price"] == Decimal("999")

    def test_guest_cart_expires_user_cart_does_not(self, cart_service):
        guest = cart_service.add_item(GUEST, "P1", 1)
        user = cart_service.add_item(USER, "P1", 1)

        assert guest["expires_at"] > utcnow() + timedelta(days=29)
        assert user["expires_at"] is None


class TestUpdateQuantity:
    def test_sets_exact_quantity(self, cart_service):
        cart_service.add_item(USER, "P1", 2)

        cart = cart_service.update_quantity(USER, "P1", 7)

        assert lines(cart) == {("P1", None): 7}

    @pytest.mark.parametrize("quantity", [0, -3])
    def test_zero_or_less_removes(self, cart_service, quantity):
        cart_service.add_item(USER, "P1", 2)

        cart = cart_service.update_quantity(USER, "P1", quantity)

        assert cart["items"] == []

    def test_missing_line(self, cart_service):
        cart_service.add_item(USER, "P1", 2)

        with pytest.raises(LineNotFound):
            cart_service.update_quantity(USER, "GLASS", 1)

    def test_variant_must_match(self, cart_service):
        cart_service.add_item(USER, "CASE", 1, color="Black")

        with pytest.raises(LineNotFound):
            cart_service.update_quantity(USER, "CASE", 2)

    def test_over_stock_is_rejected_not_clamped(self, cart_service):
        cart_service.add_item(USER, "P1", 2)

        with pytest.raises(InsufficientStock):
            cart_service.update_quantity(USER, "P1", 11)

        assert lines(cart_service.get_cart(USER)) == {("P1", None): 2}


class TestRemoveAndClear:
    def test_remove_line(self, cart_service):
        cart_service.add_item(USER, "P1", 2)
        cart_service.add_item(USER, "GLASS", 1)

        cart = cart_service.remove_item(USER, "P1")

        assert lines(cart) == {("GLASS", None): 1}

    def test_remove_absent_line_is_noop(self, cart_service):
        before = cart_service.add_item(USER, "P1", 2)

        after = cart_service.remove_item(USER, "GLASS")

        assert after["items"] == before["items"]

    def test_remove_without_cart_is_noop(self, cart_service):
        assert cart_service.remove_item(GUEST, "P1")["items"] == []

    def test_clear_is_idempotent(self, db, cart_service):
        cart_service.add_item(USER, "P1", 2)

        assert cart_service.clear_cart(USER)["items"] == []
        assert cart_service.clear_cart(USER)["items"] == []
        assert db.query(CartModel).count() == 0


class TestConcurrency:
    def test_racing_adds_for_different_products_both_survive(self, catalog, lock_service, cart_service):
        cart_service.add_item(USER, "P1", 1)

        other_db = SessionLocal()
        other = CartService(db=other_db, product_client=catalog, lock_service=lock_service)
        original_find_line = cart_service.repo.find_line
        raced = []

        def find_line_with_race(cart, product_id, color):
            # another tab commits between our read and our version bump
            if not raced:
                raced.append(True)
                other.add_item(USER, "GLASS", 3)
            return original_find_line(cart, product_id, color)

        cart_service.repo.find_line = find_line_with_race
        try:
            cart_service.add_item(USER, "CASE", 2, color="Black")
        finally:
            other_db.close()

        assert lines(cart_service.get_cart(USER)) == {
            ("P1", None): 1,
            ("GLASS", None): 3,
            ("CASE", "Black"): 2,
        }


class TestPriceRefresh:
    def _age_cart(self, db, owner, hours):
        cart = db.query(CartModel).filter(CartModel.user_id == owner.user_id).one()
        cart.priced_at = utcnow() - timedelta(hours=hours)
        db.commit()

    def test_fresh_cart_keeps_frozen_prices(self, db, catalog, cart_service):
        cart_service.add_item(USER, "P1", 1)
        catalog.set("P1", price=1200)

        assert cart_service.get_cart(USER)["items"][0]["price"] == Decimal("999")

    def test_stale_cart_is_repriced(self, db, catalog, cart_service):
        cart_service.add_item(USER, "P1", 1)
        catalog.set("P1", price=1200)
        self._age_cart(db, USER, 25)

        cart = cart_service.get_cart(USER)

        assert cart["items"][0]["price"] == Decimal("1200")

    def test_catalog_outage_serves_stale_cart(self, db, catalog, cart_service):
        cart_service.add_item(USER, "P1", 1)
        self._age_cart(db, USER, 25)
        catalog.down = True

        cart = cart_service.get_cart(USER)

        assert cart["items"][0]["price"] == Decimal("999")

    def test_removed_product_keeps_snapshot(self, db, catalog, cart_service):
        cart_service.add_item(USER, "P1", 1)
        del catalog.products["P1"]
        self._age_cart(db, USER, 25)

        cart = cart_service.get_cart(USER)

        assert cart["items"][0]["name"] == "Product P1"

    def test_catalog_outage_on_add_surfaces(self, catalog, cart_service):
        catalog.down = True

        with pytest.raises(CatalogUnavailable):
            cart_service.add_item(USER, "P1", 1)

# app/repos/cart_repo.py
from datetime import datetime
from typing import List

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session, selectinload

from app.data.models.cart import CartModel
from app.data.models.cart_item import CartItemModel
from app.domain.schemas import CartOwner


class CartRepo:
    def __init__(self, db: Session):
        self.db = db

    # =====================================================
    # carts
    # =====================================================
    def get_cart(self, owner: CartOwner) -> CartModel | None:
        # always re-read the row, a cached version would defeat optimistic locking
        stmt = (
            select(CartModel)
            .options(selectinload(CartModel.items))
            .execution_options(populate_existing=True)
        )
        if owner.user_id is not None:
            stmt = stmt.where(CartModel.user_id == owner.user_id)
        else:
            stmt = stmt.where(CartModel.session_id == owner.session_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def create_cart(self, cart: CartModel) -> CartModel:
        # flush only, the caller commits together with the first line
        self.db.add(cart)
        self.db.flush()
        return cart

    def update_cart_version(self, cart_id: int, old_version: int, new_data: dict) -> int:
        # UPDATE carts SET version = v + 1 ... WHERE id = ? AND version = v
        result = self.db.execute(
            update(CartModel)
            .where(CartModel.id == cart_id, CartModel.version == old_version)
            .values(**new_data)
        )
        return result.rowcount

    def delete_cart(self, cart_id: int, version: int) -> int:
        # lines first; a lost version check rolls both back
        self.db.execute(delete(CartItemModel).where(CartItemModel.cart_id == cart_id))
        result = self.db.execute(
            delete(CartModel).where(CartModel.id == cart_id, CartModel.version == version)
        )
        return result.rowcount

    def delete_expired_guest_carts(self, now: datetime) -> List[int]:
        expired_ids = list(
            self.db.execute(
                select(CartModel.id).where(
                    CartModel.session_id.is_not(None),
                    CartModel.expires_at.is_not(None),
                    CartModel.expires_at < now,
                )
            ).scalars()
        )
        if expired_ids:
            self.db.execute(
                delete(CartItemModel)
                .where(CartItemModel.cart_id.in_(expired_ids))
                .execution_options(synchronize_session=False)
            )
            self.db.execute(
                delete(CartModel)
                .where(CartModel.id.in_(expired_ids))
                .execution_options(synchronize_session=False)
            )
        return expired_ids

    # =====================================================
    # lines
    # =====================================================
    def find_line(self, cart: CartModel, product_id: str, color: str) -> CartItemModel | None:
        return next(
            (i for i in cart.items if i.product_id == product_id and i.color == color),
            None,
        )

    def add_line(self, cart: CartModel, line: CartItemModel) -> CartItemModel:
        cart.items.append(line)
        return line

    def remove_line(self, cart: CartModel, line: CartItemModel):
        cart.items.remove(line)

    # =====================================================
    # transaction
    # =====================================================
    def flush(self):
        self.db.flush()

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()

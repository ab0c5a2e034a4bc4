from sqlalchemy import Column, Integer, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    # reference only, the product may later be repriced or removed
    product_id = Column(String(64), nullable=False)
    # "" means no variant, keeps the unique constraint meaningful
    color = Column(String(64), nullable=False, default="")

    name = Column(String(255), nullable=False)
    image = Column(String(512), nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=False)
    discount_price = Column(Numeric(10, 2), nullable=True)
    gst_rate = Column(Numeric(5, 2), nullable=False)
    quantity = Column(Integer, nullable=False)

    cart = relationship("CartModel", back_populates="items")

    __table_args__ = (UniqueConstraint("cart_id", "product_id", "color", name="u_cart_product_color"),)

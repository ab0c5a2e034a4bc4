# app/domain/schemas.py
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from typing import Any, Dict, List, Optional
from decimal import Decimal
from datetime import datetime


# =====================================================
# Identity
# =====================================================
class CartOwner(BaseModel):
    """Key of a cart: an authenticated user or a guest session, never both."""

    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    session_id: Optional[str] = None

    @model_validator(mode="after")
    def _single_owner(self):
        if (self.user_id is None) == (self.session_id is None):
            raise ValueError("cart owner needs exactly one of user_id / session_id")
        return self

    @property
    def is_guest(self) -> bool:
        return self.session_id is not None

    def __str__(self) -> str:
        return f"user:{self.user_id}" if self.user_id else f"session:{self.session_id}"


# =====================================================
# Catalog
# =====================================================
class ProductColor(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    hex_code: Optional[str] = Field(None, alias="hexCode")
    in_stock: bool = Field(True, alias="inStock")


class CatalogProduct(BaseModel):
    """Product as returned by the catalog service."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("_id", "id"))
    name: str
    images: List[str] = []
    price: Decimal
    discount_price: Optional[Decimal] = Field(None, alias="discountPrice")
    gst_rate: Optional[Decimal] = Field(None, alias="gstRate")
    count_in_stock: int = Field(0, alias="countInStock")
    colors: List[ProductColor] = []

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> str:
        return str(v)

    @property
    def image(self) -> str:
        return self.images[0] if self.images else ""


# =====================================================
# Pricing
# =====================================================
class PricedLine(BaseModel):
    """Minimal line the pricing calculator understands."""

    model_config = ConfigDict(populate_by_name=True)

    price: Decimal = Field(..., ge=0)
    discount_price: Optional[Decimal] = Field(None, ge=0, alias="discountPrice")
    gst_rate: Optional[Decimal] = Field(None, ge=0, alias="gstRate")
    quantity: int = Field(..., gt=0, validation_alias=AliasChoices("qty", "quantity"))


class PriceBreakdown(BaseModel):
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    total_price: Decimal


class TaxQuoteIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    items: List[PricedLine] = Field(..., validation_alias=AliasChoices("orderItems", "items"))


# =====================================================
# Cart
# =====================================================
class AddItemIn(BaseModel):
    """Body for adding a product to the cart."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., min_length=1, alias="productId")
    quantity: int = Field(1, gt=0, validation_alias=AliasChoices("qty", "quantity"))
    color: Optional[str] = None


class UpdateItemIn(BaseModel):
    """Body for setting a line quantity; zero or less removes the line."""

    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., min_length=1, alias="productId")
    quantity: int = Field(..., validation_alias=AliasChoices("qty", "quantity"))
    color: Optional[str] = None


class MergeIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., min_length=1, alias="sessionId")


class CartLineOut(BaseModel):
    product_id: str
    color: Optional[str] = None
    name: str
    image: str
    price: Decimal
    discount_price: Optional[Decimal] = None
    unit_price: Decimal
    gst_rate: Decimal
    quantity: int


class CartOut(BaseModel):
    user_id: Optional[str] = None
    session_id: Optional[str] = None
    items: List[CartLineOut]
    prices: PriceBreakdown
    expires_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# =====================================================
# Orders
# =====================================================
class OrderItemIn(BaseModel):
    """Checkout line. Client-side name/price fields are accepted but not trusted."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product_id: str = Field(..., min_length=1, validation_alias=AliasChoices("product", "productId"))
    quantity: int = Field(..., validation_alias=AliasChoices("qty", "quantity"))
    color: Optional[str] = None


class ShippingAddressIn(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


class OrderCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_items: List[OrderItemIn] = Field([], alias="orderItems")
    shipping_address: ShippingAddressIn = Field(default_factory=ShippingAddressIn, alias="shippingAddress")
    payment_method: str = Field(..., min_length=1, alias="paymentMethod")
    # client-side totals, used only to detect mismatches
    items_price: Optional[Decimal] = Field(None, alias="itemsPrice")
    tax_price: Optional[Decimal] = Field(None, alias="taxPrice")
    shipping_price: Optional[Decimal] = Field(None, alias="shippingPrice")
    total_price: Optional[Decimal] = Field(None, alias="totalPrice")

    def client_prices(self) -> Dict[str, Optional[Decimal]]:
        return {
            "items_price": self.items_price,
            "tax_price": self.tax_price,
            "shipping_price": self.shipping_price,
            "total_price": self.total_price,
        }


class PaymentResultIn(BaseModel):
    """Payment processor confirmation, stored as-is."""

    id: Optional[str] = None
    status: Optional[str] = None
    update_time: Optional[str] = None
    email_address: Optional[str] = None


class TrackingInfoIn(BaseModel):
    number: Optional[str] = None
    url: Optional[str] = None


class DeliverIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tracking_info: Optional[TrackingInfoIn] = Field(None, alias="trackingInfo")


class OrderLineOut(BaseModel):
    product_id: str
    color: Optional[str] = None
    name: str
    image: str
    unit_price: Decimal
    gst_rate: Decimal
    quantity: int


class ShippingAddressOut(BaseModel):
    street: str
    city: str
    state: str
    pincode: str


class OrderOut(BaseModel):
    id: str
    order_number: str
    user_id: str
    items: List[OrderLineOut]
    shipping_address: ShippingAddressOut
    payment_method: str
    items_price: Decimal
    tax_price: Decimal
    shipping_price: Decimal
    total_price: Decimal
    is_paid: bool
    paid_at: Optional[datetime] = None
    payment_result: Optional[Dict[str, Any]] = None
    is_delivered: bool
    delivered_at: Optional[datetime] = None
    tracking_number: Optional[str] = None
    tracking_url: Optional[str] = None
    created_at: datetime


class OrderPage(BaseModel):
    orders: List[OrderOut]
    page: int
    pages: int
    total: int

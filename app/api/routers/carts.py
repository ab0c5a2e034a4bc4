#app/api/routers/carts.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.deps import get_cart_service, get_identity, require_user
from app.api.errors import to_http
from app.domain.errors import StorefrontError
from app.domain.schemas import AddItemIn, CartOut, MergeIn, UpdateItemIn
from app.services.cart_service import CartService
from app.services.identity import Identity, InvalidToken, guest_session_id

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartOut)
def get_cart(
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    return svc.get_cart(identity.cart_owner())


@router.post("/add", response_model=CartOut, status_code=201)
def add_item(
    payload: AddItemIn,
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.add_item(
            identity.cart_owner(),
            product_id=payload.product_id,
            quantity=payload.quantity,
            color=payload.color,
        )
    except StorefrontError as e:
        raise to_http(e)


@router.put("/update", response_model=CartOut)
def update_item(
    payload: UpdateItemIn,
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.update_quantity(
            identity.cart_owner(),
            product_id=payload.product_id,
            quantity=payload.quantity,
            color=payload.color,
        )
    except StorefrontError as e:
        raise to_http(e)


@router.delete("/{product_id}", response_model=CartOut)
def remove_item(
    product_id: str,
    color: Optional[str] = Query(None),
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.remove_item(identity.cart_owner(), product_id, color)
    except StorefrontError as e:
        raise to_http(e)


@router.delete("", response_model=CartOut)
def clear_cart(
    identity: Identity = Depends(get_identity),
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.clear_cart(identity.cart_owner())
    except StorefrontError as e:
        raise to_http(e)


@router.post("/merge", response_model=CartOut)
def merge_cart(
    payload: MergeIn,
    identity: Identity = Depends(require_user),
    svc: CartService = Depends(get_cart_service),
):
    """
    Moves the guest cart of `sessionId` into the caller's cart.
    Called once right after login; a missing guest cart is not an error.
    """
    try:
        session_id = guest_session_id(payload.session_id)
    except InvalidToken as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        return svc.merge_guest_cart(identity.user_id, session_id)
    except StorefrontError as e:
        raise to_http(e)

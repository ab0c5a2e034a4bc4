# app/api/deps.py
from fastapi import Depends, Header, HTTPException, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from app.data.database import get_db
from app.services.cart_service import CartService
from app.services.identity import (
    Identity,
    InvalidToken,
    decode_access_token,
    guest_session_id,
    issue_guest_token,
)
from app.services.lock_service import LockService
from app.services.notification_service import NotificationService
from app.services.order_service import OrderService
from app.services.product_client import ProductClient

SESSION_HEADER = "X-Session-Id"

security = HTTPBearer(auto_error=False)


def get_product_client() -> ProductClient:
    return ProductClient()


def get_lock_service() -> LockService:
    return LockService()


def get_notification_service() -> NotificationService:
    return NotificationService()


def get_cart_service(
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
    lock_service: LockService = Depends(get_lock_service),
) -> CartService:
    return CartService(db=db, product_client=product_client, lock_service=lock_service)


def get_order_service(
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
    notification_service: NotificationService = Depends(get_notification_service),
) -> OrderService:
    return OrderService(db, product_client, notification_service)


def get_identity(
    response: Response,
    creds: HTTPAuthorizationCredentials | None = Depends(security),
    session_token: str | None = Header(default=None, alias=SESSION_HEADER),
) -> Identity:
    """
    Bearer token -> user; otherwise a guest session.
    Guests without a session get a fresh server-signed one in the response header.
    """
    user_id = role = None
    if creds:
        try:
            payload = decode_access_token(creds.credentials)
        except InvalidToken as e:
            raise HTTPException(status_code=401, detail=str(e))
        user_id, role = payload["sub"], payload.get("role", "customer")

    session_id = None
    if session_token:
        try:
            session_id = guest_session_id(session_token)
        except InvalidToken as e:
            # a logged-in user with a stale guest token is still a valid caller
            if user_id is None:
                raise HTTPException(status_code=401, detail=str(e))
    elif user_id is None:
        token = issue_guest_token()
        session_id = guest_session_id(token)
        response.headers[SESSION_HEADER] = token

    return Identity(user_id=user_id, role=role, session_id=session_id)


def require_user(identity: Identity = Depends(get_identity)) -> Identity:
    if not identity.is_authenticated:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return identity


def require_admin(identity: Identity = Depends(require_user)) -> Identity:
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return identity

# app/services/identity.py
import uuid
from datetime import timedelta
from typing import Optional

import jwt
from pydantic import BaseModel

from app.domain.schemas import CartOwner
from app.utils.clock import utcnow
from app.utils.settings import JWT_SECRET, JWT_ALGORITHM, GUEST_TOKEN_TTL_SECONDS


class InvalidToken(Exception):
    pass


class Identity(BaseModel):
    """Caller resolved from the request: a user, a guest session, or both during merge."""

    user_id: Optional[str] = None
    role: Optional[str] = None
    session_id: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def cart_owner(self) -> CartOwner:
        if self.user_id is not None:
            return CartOwner(user_id=self.user_id)
        return CartOwner(session_id=self.session_id)


def decode_access_token(token: str) -> dict:
    """Access tokens are issued by the auth service: {sub, role, type="access"}."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        raise InvalidToken("Invalid token") from e
    if payload.get("type") != "access" or not payload.get("sub"):
        raise InvalidToken("Invalid access token")
    return payload


def issue_guest_token() -> str:
    now = utcnow()
    return jwt.encode(
        {
            "sid": uuid.uuid4().hex,
            "type": "guest",
            "iat": now,
            "exp": now + timedelta(seconds=GUEST_TOKEN_TTL_SECONDS),
        },
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def guest_session_id(token: str) -> str:
    """Session id behind a server-issued guest token; forged tokens are rejected."""
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError as e:
        raise InvalidToken("Invalid session token") from e
    if payload.get("type") != "guest" or not payload.get("sid"):
        raise InvalidToken("Invalid session token")
    return payload["sid"]

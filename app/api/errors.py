# app/api/errors.py
from fastapi import HTTPException

from app.domain.errors import StorefrontError


def to_http(exc: StorefrontError) -> HTTPException:
    # the code lets clients tell "reduce quantity" conflicts from form errors
    return HTTPException(
        status_code=exc.status_code,
        detail={"code": exc.code, "message": exc.message},
    )

# app/tasks/expire.py
from datetime import datetime

from sqlalchemy.orm import Session

from app.celery_worker import celery_app
from app.data.database import SessionLocal
from app.repos.cart_repo import CartRepo
from app.utils.clock import utcnow
from app.utils.logging import get_logger

logger = get_logger(__name__)


def expire_guest_carts(db: Session, now: datetime | None = None) -> int:
    """Deletes guest carts idle past their retention window. User carts never expire."""
    repo = CartRepo(db)
    expired = repo.delete_expired_guest_carts(now or utcnow())
    repo.commit()
    logger.info(f"Expired {len(expired)} guest cart(s)")
    return len(expired)


@celery_app.task(name="app.tasks.expire.expire_guest_carts_task")
def expire_guest_carts_task():
    logger.info("Expire guest carts task started")

    db = SessionLocal()
    try:
        return expire_guest_carts(db)
    finally:
        db.close()

# app/services/notification_service.py
from app.celery_worker import celery_app
from app.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Customer notifications about order progress.
    Sent through Celery so the request never waits on delivery.
    """

    @staticmethod
    def order_placed(user_id: str, order_number: str):
        send_order_notification_task.delay(user_id, order_number, "placed")

    @staticmethod
    def order_paid(user_id: str, order_number: str):
        send_order_notification_task.delay(user_id, order_number, "paid")

    @staticmethod
    def order_delivered(user_id: str, order_number: str):
        send_order_notification_task.delay(user_id, order_number, "delivered")


@celery_app.task(name="app.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: str, order_number: str, event: str):
    """
    Celery task. Email/SMS delivery belongs to an external provider,
    here the event is only logged.
    """
    logger.info(f"[NOTIFICATION] User {user_id}: order {order_number} {event}")
    return {"user_id": user_id, "order_number": order_number, "event": event, "status": "sent"}

from sqlalchemy.orm import Session
from typing import List, Optional

from school_scheduler.models.notification_model import Notification, NotificationType


def create_notification(db: Session, type: NotificationType, reference_id: int, content: str) -> Notification:
    db_notification = Notification(type=type, reference_id=reference_id, content=content, is_sent=False)
    db.add(db_notification)
    db.commit()
    db.refresh(db_notification)
    return db_notification


def get_notifications(
    db: Session, type: Optional[NotificationType] = None, reference_id: Optional[int] = None
) -> List[Notification]:
    query = db.query(Notification)
    if type is not None:
        query = query.filter(Notification.type == type)
    if reference_id is not None:
        query = query.filter(Notification.reference_id == reference_id)
    return query.order_by(Notification.notification_id).all()

# school_scheduler/services/notification_service.py
import logging
from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from typing import Dict, Optional, Union

from sqlalchemy.orm import Session

from school_scheduler.crud import makeup_crud, notification_crud, schedule_crud
from school_scheduler.models.class_model import ACTIVE_CLASS_STATUSES
from school_scheduler.models.makeup_model import MakeupClass
from school_scheduler.models.notification_model import NotificationType
from school_scheduler.models.schedule_model import ClassSchedule, OPEN_SCHEDULE_STATUSES
from school_scheduler.services.service_helper import today

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Giao diện gửi thông báo ra ngoài (LINE / Facebook do dịch vụ khác đảm nhận)."""

    @abstractmethod
    def send_makeup_scheduled(self, makeup: MakeupClass) -> None:
        ...

    @abstractmethod
    def send_makeup_reminder(self, makeup: MakeupClass) -> None:
        ...

    @abstractmethod
    def send_class_reminder(self, schedule: ClassSchedule) -> None:
        ...


class OutboxNotifier(Notifier):
    """Ghi thông báo vào bảng notifications để worker gửi sau."""

    def __init__(self, db: Session):
        self.db = db

    def send_makeup_scheduled(self, makeup: MakeupClass) -> None:
        slot = f"{makeup.makeup_date} {makeup.makeup_start_time:%H:%M}-{makeup.makeup_end_time:%H:%M}"
        content = f"Makeup class for {makeup.class_name or makeup.original_class_id} scheduled on {slot}"
        notification_crud.create_notification(self.db, NotificationType.makeup_scheduled, makeup.makeup_id, content)

    def send_makeup_reminder(self, makeup: MakeupClass) -> None:
        content = f"Reminder: makeup class tomorrow at {makeup.makeup_start_time:%H:%M}"
        notification_crud.create_notification(self.db, NotificationType.makeup_reminder, makeup.makeup_id, content)

    def send_class_reminder(self, schedule: ClassSchedule) -> None:
        cls = schedule.class_info
        content = f"Reminder: {cls.name} session {schedule.session_number} tomorrow at {cls.start_time:%H:%M}"
        notification_crud.create_notification(self.db, NotificationType.class_reminder, schedule.schedule_id, content)


def notify_safely(db: Session, send, target) -> bool:
    """
    Gửi thông báo kiểu fire-and-forget: lỗi chỉ được ghi log,
    không làm hỏng thao tác đã commit trước đó.
    """
    try:
        send(target)
        return True
    except Exception:
        db.rollback()
        logger.warning("Notification %s failed for %r", getattr(send, "__name__", send), target, exc_info=True)
        return False


def send_tomorrow_reminders(
    db: Session, now: Union[datetime, date, None] = None, notifier: Optional[Notifier] = None
) -> Dict[str, int]:
    """Nhắc lịch cho các buổi học và buổi học bù diễn ra vào ngày mai."""
    notifier = notifier or OutboxNotifier(db)
    tomorrow = today(now) + timedelta(days=1)
    summary = {"class_reminders": 0, "makeup_reminders": 0, "failed": 0}

    sessions = [
        s for s in schedule_crud.get_schedules_on_date(db, tomorrow, statuses=OPEN_SCHEDULE_STATUSES)
        if s.class_info.status in ACTIVE_CLASS_STATUSES
    ]
    for schedule in sessions:
        if notify_safely(db, notifier.send_class_reminder, schedule):
            summary["class_reminders"] += 1
        else:
            summary["failed"] += 1

    for makeup in makeup_crud.get_scheduled_makeups_on_date(db, tomorrow):
        if notify_safely(db, notifier.send_makeup_reminder, makeup):
            summary["makeup_reminders"] += 1
        else:
            summary["failed"] += 1

    logger.info("Reminders for %s: %s", tomorrow, summary)
    return summary

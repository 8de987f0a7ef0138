# school_scheduler/models/notification_model.py
from sqlalchemy import Boolean, Column, Integer, DateTime, Text, func, Enum
from school_scheduler.models.base_model import Base
import enum

class NotificationType(str, enum.Enum):
    """Định nghĩa các loại thông báo."""
    makeup_scheduled = "makeup_scheduled"
    makeup_reminder = "makeup_reminder"
    class_reminder = "class_reminder"


class Notification(Base):
    """
    Hàng đợi thông báo gửi ra ngoài (LINE / Facebook do dịch vụ khác đảm nhận).
    """
    __tablename__ = 'notifications'
    notification_id = Column(Integer, primary_key=True)
    type = Column(Enum(NotificationType), nullable=False)
    reference_id = Column(Integer, nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=func.now())
    is_sent = Column(Boolean, default=False)

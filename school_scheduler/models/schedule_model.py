from sqlalchemy import (
    Column, Date, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint, func
)
from sqlalchemy.orm import relationship
from school_scheduler.models.base_model import Base
import enum


class ScheduleStatus(str, enum.Enum):
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"
    rescheduled = "rescheduled"


# Buổi học chưa diễn ra (còn có thể dời / hủy)
OPEN_SCHEDULE_STATUSES = (ScheduleStatus.scheduled, ScheduleStatus.rescheduled)


class ClassSchedule(Base):
    """
    Một buổi học cụ thể của lớp vào một ngày xác định.
    """
    __tablename__ = "class_schedules"
    __table_args__ = (
        UniqueConstraint("class_id", "session_number", name="uq_class_schedules_class_session"),
    )

    schedule_id = Column(Integer, primary_key=True, index=True)
    class_id = Column(Integer, ForeignKey("classes.class_id", ondelete="CASCADE"), nullable=False, index=True)
    session_number = Column(Integer, nullable=False)
    session_date = Column(Date, nullable=False, index=True)
    status = Column(Enum(ScheduleStatus), nullable=False, default=ScheduleStatus.scheduled)

    # Thông tin dời lịch
    original_date = Column(Date, nullable=True)
    rescheduled_at = Column(DateTime, nullable=True)
    rescheduled_by = Column(String(100), nullable=True)
    note = Column(Text, nullable=True)

    class_info = relationship("Class", back_populates="schedules")
    attendances = relationship(
        "Attendance",
        back_populates="schedule",
        cascade="all, delete-orphan",
    )
    changes = relationship(
        "ScheduleChange",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="ScheduleChange.change_id",
    )

    def __repr__(self):
        return (
            f"<ClassSchedule(class_id={self.class_id}, "
            f"session={self.session_number}, date={self.session_date})>"
        )


class ScheduleChange(Base):
    """Lịch sử dời buổi học (chỉ thêm, không sửa)."""
    __tablename__ = "schedule_changes"

    change_id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("class_schedules.schedule_id", ondelete="CASCADE"), nullable=False, index=True)
    from_date = Column(Date, nullable=False)
    to_date = Column(Date, nullable=False)
    reason = Column(Text, nullable=True)
    changed_by = Column(String(100), nullable=True)
    changed_at = Column(DateTime, default=func.now(), nullable=False)

    schedule = relationship("ClassSchedule", back_populates="changes")

from sqlalchemy import (
    CheckConstraint, Column, Date, DateTime, Enum, Integer, JSON, String, Time, func
)
from sqlalchemy.orm import relationship
from school_scheduler.models.base_model import Base
import enum


class ClassStatus(str, enum.Enum):
    draft = "draft"
    published = "published"
    started = "started"
    completed = "completed"
    cancelled = "cancelled"


# Các trạng thái mà lớp học vẫn còn hoạt động (chiếm phòng, có lịch)
ACTIVE_CLASS_STATUSES = (ClassStatus.draft, ClassStatus.published, ClassStatus.started)
TERMINAL_CLASS_STATUSES = (ClassStatus.completed, ClassStatus.cancelled)


class Class(Base):
    __tablename__ = "classes"
    __table_args__ = (
        CheckConstraint("enrolled_count <= max_students", name="ck_classes_enrolled_le_max"),
        CheckConstraint("total_sessions > 0", name="ck_classes_total_sessions_positive"),
    )

    class_id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    code = Column(String(50), unique=True, nullable=False)

    # Tham chiếu tới các thực thể bên ngoài (chi nhánh, phòng, giáo viên, môn học)
    subject_id = Column(Integer, nullable=False)
    teacher_id = Column(Integer, nullable=False, index=True)
    branch_id = Column(Integer, nullable=False, index=True)
    room_id = Column(Integer, nullable=False, index=True)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_sessions = Column(Integer, nullable=False)
    # Danh sách thứ trong tuần: 0 = Chủ nhật ... 6 = Thứ bảy
    days_of_week = Column(JSON, nullable=False, default=list)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    max_students = Column(Integer, nullable=False)
    min_students = Column(Integer, nullable=False, default=1)
    enrolled_count = Column(Integer, nullable=False, default=0)

    status = Column(Enum(ClassStatus), nullable=False, default=ClassStatus.draft, index=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    schedules = relationship(
        "ClassSchedule",
        back_populates="class_info",
        cascade="all, delete-orphan",
        order_by="ClassSchedule.session_number",
    )

    def __repr__(self):
        return f"<Class(code='{self.code}', status={self.status})>"

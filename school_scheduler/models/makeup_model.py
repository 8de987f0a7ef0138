from sqlalchemy import (
    Column, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text, Time, func, text
)
from sqlalchemy.orm import relationship
from school_scheduler.models.base_model import Base
import enum


class MakeupStatus(str, enum.Enum):
    pending = "pending"
    scheduled = "scheduled"
    completed = "completed"
    cancelled = "cancelled"


class MakeupType(str, enum.Enum):
    scheduled = "scheduled"
    ad_hoc = "ad-hoc"


class MakeupAttendanceStatus(str, enum.Enum):
    present = "present"
    absent = "absent"


class MakeupClass(Base):
    """
    Buổi học bù cho một học sinh đã vắng một buổi học gốc.
    """
    __tablename__ = "makeup_classes"
    __table_args__ = (
        # Mỗi (học sinh, lớp, buổi gốc) chỉ có tối đa một makeup chưa bị hủy
        Index(
            "uq_makeup_classes_active_key",
            "student_id",
            "original_class_id",
            "original_schedule_id",
            unique=True,
            postgresql_where=text("status != 'cancelled'"),
            sqlite_where=text("status != 'cancelled'"),
        ),
    )

    makeup_id = Column(Integer, primary_key=True, index=True)
    type = Column(Enum(MakeupType, values_callable=lambda e: [m.value for m in e]), nullable=False, default=MakeupType.scheduled)

    # Buổi học gốc
    student_id = Column(Integer, nullable=False, index=True)
    original_class_id = Column(Integer, ForeignKey("classes.class_id", ondelete="CASCADE"), nullable=False, index=True)
    # NULL khi buổi gốc đã bị xóa lúc sinh lại lịch (makeup chỉ còn trong lịch sử)
    original_schedule_id = Column(Integer, ForeignKey("class_schedules.schedule_id", ondelete="SET NULL"), nullable=True)
    original_session_number = Column(Integer, nullable=True)
    original_session_date = Column(Date, nullable=True)
    branch_id = Column(Integer, nullable=False, index=True)

    # Dữ liệu hiển thị (cache), không dùng cho logic
    class_name = Column(String(100), nullable=True)
    student_name = Column(String(100), nullable=True)

    # Thông tin yêu cầu
    request_date = Column(DateTime, default=func.now(), nullable=False)
    requested_by = Column(String(100), nullable=True)
    reason = Column(Text, nullable=True)
    status = Column(
        Enum(MakeupStatus),
        nullable=False,
        default=MakeupStatus.pending,
        index=True,
    )
    notes = Column(Text, nullable=True)

    # Lịch học bù
    makeup_date = Column(Date, nullable=True, index=True)
    makeup_start_time = Column(Time, nullable=True)
    makeup_end_time = Column(Time, nullable=True)
    makeup_teacher_id = Column(Integer, nullable=True, index=True)
    makeup_branch_id = Column(Integer, nullable=True)
    makeup_room_id = Column(Integer, nullable=True)
    makeup_confirmed_at = Column(DateTime, nullable=True)
    makeup_confirmed_by = Column(String(100), nullable=True)

    # Điểm danh buổi học bù
    attendance_status = Column(Enum(MakeupAttendanceStatus), nullable=True)
    attendance_checked_by = Column(String(100), nullable=True)
    attendance_checked_at = Column(DateTime, nullable=True)
    attendance_note = Column(Text, nullable=True)

    created_at = Column(DateTime, default=func.now())
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())

    original_class = relationship("Class")
    original_schedule = relationship("ClassSchedule")

    def __repr__(self):
        return (
            f"<MakeupClass(student_id={self.student_id}, "
            f"schedule_id={self.original_schedule_id}, status={self.status})>"
        )

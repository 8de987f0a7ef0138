from sqlalchemy.orm import relationship
from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint
from school_scheduler.models.base_model import Base
import enum

class AttendanceStatus(str, enum.Enum):
    present = "present"
    absent = "absent"
    late = "late"
    sick = "sick"
    leave = "leave"


# Các trạng thái cho thấy buổi học đã thực sự diễn ra
HELD_ATTENDANCE_STATUSES = (
    AttendanceStatus.present,
    AttendanceStatus.late,
    AttendanceStatus.sick,
    AttendanceStatus.leave,
)
PRESENT_ATTENDANCE_STATUSES = (AttendanceStatus.present, AttendanceStatus.late)


class Attendance(Base):
    __tablename__ = "attendances"
    __table_args__ = (
        UniqueConstraint("schedule_id", "student_id", name="uq_attendances_schedule_student"),
    )

    attendance_id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("class_schedules.schedule_id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(Integer, nullable=False, index=True)

    status = Column(Enum(AttendanceStatus), nullable=False)
    note = Column(Text, nullable=True)
    feedback = Column(Text, nullable=True)
    checked_by = Column(String(100), nullable=True)
    checked_at = Column(DateTime, nullable=True)

    schedule = relationship("ClassSchedule", back_populates="attendances")

    def __repr__(self):
        return (
            f"<Attendance(student_id={self.student_id}, "
            f"schedule_id={self.schedule_id}, status={self.status})>"
        )

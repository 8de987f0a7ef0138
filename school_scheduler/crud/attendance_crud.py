from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import List, Optional, Tuple
from datetime import date, datetime

from school_scheduler.models.attendance_model import Attendance, AttendanceStatus
from school_scheduler.models.schedule_model import ClassSchedule


def get_attendances_by_schedule(db: Session, schedule_id: int) -> List[Attendance]:
    return (
        db.query(Attendance)
        .filter(Attendance.schedule_id == schedule_id)
        .order_by(Attendance.student_id)
        .all()
    )


def get_attendance(db: Session, schedule_id: int, student_id: int) -> Optional[Attendance]:
    return (
        db.query(Attendance)
        .filter(Attendance.schedule_id == schedule_id, Attendance.student_id == student_id)
        .first()
    )


def replace_attendances(db: Session, schedule: ClassSchedule, records: List[Attendance]) -> List[Attendance]:
    """
    Thay toàn bộ danh sách điểm danh của buổi học.
    Không commit.
    """
    schedule.attendances = []
    db.flush()
    schedule.attendances = records
    db.flush()
    return records


def upsert_attendance(
    db: Session,
    schedule_id: int,
    student_id: int,
    status: AttendanceStatus,
    note: Optional[str],
    checked_by: Optional[str],
    checked_at: datetime,
) -> Attendance:
    """Tạo mới hoặc ghi đè điểm danh của một học sinh. Không commit."""
    db_attendance = get_attendance(db, schedule_id, student_id)
    if db_attendance is None:
        db_attendance = Attendance(schedule_id=schedule_id, student_id=student_id)
        db.add(db_attendance)
    db_attendance.status = status
    db_attendance.note = note
    db_attendance.checked_by = checked_by
    db_attendance.checked_at = checked_at
    db.flush()
    return db_attendance


def count_by_class(db: Session, class_id: int) -> dict:
    """Đếm số bản ghi điểm danh theo trạng thái cho toàn bộ lớp."""
    rows = (
        db.query(Attendance.status)
        .join(ClassSchedule, Attendance.schedule_id == ClassSchedule.schedule_id)
        .filter(ClassSchedule.class_id == class_id)
        .all()
    )
    counts = {}
    for (status,) in rows:
        counts[status] = counts.get(status, 0) + 1
    return counts


def get_student_attendance_history(
    db: Session,
    student_id: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[Tuple[Attendance, ClassSchedule]]:
    """Điểm danh của một học sinh qua mọi lớp, buổi mới nhất trước."""
    query = (
        db.query(Attendance, ClassSchedule)
        .join(ClassSchedule, Attendance.schedule_id == ClassSchedule.schedule_id)
        .filter(Attendance.student_id == student_id)
    )
    if start is not None:
        query = query.filter(ClassSchedule.session_date >= start)
    if end is not None:
        query = query.filter(ClassSchedule.session_date <= end)
    return query.order_by(ClassSchedule.session_date.desc(), ClassSchedule.session_number.desc()).all()


def get_class_attendance_statuses(db: Session, class_id: int) -> List[Tuple[int, int, AttendanceStatus]]:
    """(schedule_id, student_id, status) của toàn bộ điểm danh trong lớp."""
    return (
        db.query(Attendance.schedule_id, Attendance.student_id, Attendance.status)
        .join(ClassSchedule, Attendance.schedule_id == ClassSchedule.schedule_id)
        .filter(ClassSchedule.class_id == class_id)
        .order_by(Attendance.student_id)
        .all()
    )


def count_sessions_by_class(db: Session, class_id: int) -> int:
    return (
        db.query(func.count(ClassSchedule.schedule_id))
        .filter(ClassSchedule.class_id == class_id)
        .scalar()
    ) or 0

from sqlalchemy.orm import Session
from sqlalchemy import func
from typing import Dict, List, Optional
from datetime import date

from school_scheduler.models.makeup_model import MakeupClass, MakeupStatus, MakeupType


def get_makeup(db: Session, makeup_id: int) -> Optional[MakeupClass]:
    return db.query(MakeupClass).filter(MakeupClass.makeup_id == makeup_id).first()


def count_active_for_student_class(db: Session, student_id: int, class_id: int) -> int:
    """Số makeup chưa hủy của học sinh trong một lớp (dùng cho giới hạn)."""
    return (
        db.query(func.count(MakeupClass.makeup_id))
        .filter(
            MakeupClass.student_id == student_id,
            MakeupClass.original_class_id == class_id,
            MakeupClass.status != MakeupStatus.cancelled,
        )
        .scalar()
    ) or 0


def get_active_for_key(db: Session, student_id: int, class_id: int, schedule_id: int) -> Optional[MakeupClass]:
    return (
        db.query(MakeupClass)
        .filter(
            MakeupClass.student_id == student_id,
            MakeupClass.original_class_id == class_id,
            MakeupClass.original_schedule_id == schedule_id,
            MakeupClass.status != MakeupStatus.cancelled,
        )
        .first()
    )


def get_makeups(
    db: Session,
    student_id: Optional[int] = None,
    class_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    status: Optional[MakeupStatus] = None,
    type: Optional[MakeupType] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[MakeupClass]:
    query = db.query(MakeupClass)
    if student_id is not None:
        query = query.filter(MakeupClass.student_id == student_id)
    if class_id is not None:
        query = query.filter(MakeupClass.original_class_id == class_id)
    if branch_id is not None:
        query = query.filter(MakeupClass.branch_id == branch_id)
    if status is not None:
        query = query.filter(MakeupClass.status == status)
    if type is not None:
        query = query.filter(MakeupClass.type == type)
    return query.order_by(MakeupClass.request_date.desc(), MakeupClass.makeup_id.desc()).offset(skip).limit(limit).all()


def get_scheduled_makeups_on_date(
    db: Session,
    day: date,
    teacher_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    room_id: Optional[int] = None,
    exclude_makeup_id: Optional[int] = None,
) -> List[MakeupClass]:
    """
    Makeup đã xếp lịch vào một ngày, dùng cho kiểm tra trùng slot
    (cùng giáo viên HOẶC cùng phòng) và cho nhắc lịch.
    """
    query = db.query(MakeupClass).filter(
        MakeupClass.status == MakeupStatus.scheduled,
        MakeupClass.makeup_date == day,
    )
    if exclude_makeup_id is not None:
        query = query.filter(MakeupClass.makeup_id != exclude_makeup_id)
    makeups = query.order_by(MakeupClass.makeup_start_time).all()
    if teacher_id is None and room_id is None:
        return makeups
    return [
        m for m in makeups
        if (teacher_id is not None and m.makeup_teacher_id == teacher_id)
        or (room_id is not None and m.makeup_branch_id == branch_id and m.makeup_room_id == room_id)
    ]


def insert_makeup(db: Session, makeup: MakeupClass) -> MakeupClass:
    """Chèn và flush ngay để ràng buộc unique được kiểm tra tại đây. Không commit."""
    db.add(makeup)
    db.flush()
    return makeup


def delete_makeup(db: Session, makeup: MakeupClass) -> None:
    db.delete(makeup)
    db.flush()


def count_by_status_and_type(db: Session, branch_id: Optional[int] = None) -> Dict[str, Dict[str, int]]:
    query = db.query(MakeupClass.status, MakeupClass.type, func.count(MakeupClass.makeup_id))
    if branch_id is not None:
        query = query.filter(MakeupClass.branch_id == branch_id)
    rows = query.group_by(MakeupClass.status, MakeupClass.type).all()

    by_status: Dict[str, int] = {}
    by_type: Dict[str, int] = {}
    for status, makeup_type, count in rows:
        by_status[status.value] = by_status.get(status.value, 0) + count
        by_type[makeup_type.value] = by_type.get(makeup_type.value, 0) + count
    return {"by_status": by_status, "by_type": by_type}


def count_attendance(db: Session, branch_id: Optional[int] = None) -> Dict[str, int]:
    query = (
        db.query(MakeupClass.attendance_status, func.count(MakeupClass.makeup_id))
        .filter(MakeupClass.attendance_status.isnot(None))
    )
    if branch_id is not None:
        query = query.filter(MakeupClass.branch_id == branch_id)
    return {status.value: count for status, count in query.group_by(MakeupClass.attendance_status).all()}

from sqlalchemy.orm import Session, joinedload
from sqlalchemy import select
from typing import Iterable, List, Optional, Set
from datetime import date, datetime

from school_scheduler.crud import audit_log_crud
from school_scheduler.models.class_model import Class
from school_scheduler.models.makeup_model import MakeupClass, MakeupStatus
from school_scheduler.models.schedule_model import ClassSchedule, ScheduleChange, ScheduleStatus
from school_scheduler.schemas.makeup_schema import MakeupClassRead
from school_scheduler.services.service_helper import utc_now


def get_schedule(db: Session, schedule_id: int) -> Optional[ClassSchedule]:
    """
    Lấy một buổi học theo schedule_id.
    Trả về ClassSchedule object hoặc None nếu không tìm thấy.
    """
    return db.query(ClassSchedule).filter(ClassSchedule.schedule_id == schedule_id).first()


def get_schedules_by_class(db: Session, class_id: int) -> List[ClassSchedule]:
    return (
        db.query(ClassSchedule)
        .filter(ClassSchedule.class_id == class_id)
        .order_by(ClassSchedule.session_date, ClassSchedule.session_number)
        .all()
    )


def get_session_dates(db: Session, class_id: int) -> Set[date]:
    stmt = select(ClassSchedule.session_date).where(ClassSchedule.class_id == class_id)
    return set(db.execute(stmt).scalars().all())


def get_schedules_on_date(
    db: Session,
    day: date,
    branch_id: Optional[int] = None,
    statuses: Optional[Iterable[ScheduleStatus]] = None,
) -> List[ClassSchedule]:
    """Các buổi học rơi vào một ngày, kèm thông tin lớp (1 query)."""
    query = (
        db.query(ClassSchedule)
        .join(Class, ClassSchedule.class_id == Class.class_id)
        .options(joinedload(ClassSchedule.class_info))
        .filter(ClassSchedule.session_date == day)
    )
    if branch_id is not None:
        query = query.filter(Class.branch_id == branch_id)
    if statuses:
        query = query.filter(ClassSchedule.status.in_(list(statuses)))
    return query.order_by(ClassSchedule.schedule_id).all()


def get_rescheduled_schedules(db: Session, class_id: int) -> List[ClassSchedule]:
    return (
        db.query(ClassSchedule)
        .options(joinedload(ClassSchedule.changes))
        .filter(
            ClassSchedule.class_id == class_id,
            ClassSchedule.original_date.isnot(None),
        )
        .order_by(ClassSchedule.session_number)
        .all()
    )


def replace_class_schedules(
    db: Session,
    class_obj: Class,
    dates: List[date],
    performed_by: Optional[str] = "system",
    now: Optional[datetime] = None,
) -> List[ClassSchedule]:
    """
    Thay toàn bộ buổi học của lớp bằng bộ mới với session_number liên tiếp (1..n).
    Bộ mới được chèn trước khi bộ cũ bị xóa, makeup đang trỏ vào buổi cũ được
    chuyển sang buổi mới cùng session_number.
    Nếu không còn buổi đó: makeup đã hoàn thành bị hủy mềm (giữ lại làm lịch sử,
    bỏ liên kết tới buổi gốc), makeup chưa diễn ra bị xóa hẳn. Cả hai đều có bản ghi audit.
    Không commit: service gọi hàm này trong một giao dịch duy nhất cho mỗi lớp.
    """
    old_schedules = list(class_obj.schedules)
    old_numbers = {s.schedule_id: s.session_number for s in old_schedules}

    # Đẩy số buổi cũ ra khỏi miền 1..n trong lúc hai bộ cùng tồn tại
    for schedule in old_schedules:
        schedule.session_number = -schedule.session_number
    db.flush()

    new_schedules = [
        ClassSchedule(
            session_number=index + 1,
            session_date=session_date,
            status=ScheduleStatus.scheduled,
        )
        for index, session_date in enumerate(dates)
    ]
    class_obj.schedules.extend(new_schedules)
    db.flush()

    if old_numbers:
        by_number = {s.session_number: s for s in new_schedules}
        makeups = (
            db.query(MakeupClass)
            .filter(MakeupClass.original_schedule_id.in_(list(old_numbers)))
            .all()
        )
        for makeup in makeups:
            session_number = old_numbers[makeup.original_schedule_id]
            target = by_number.get(session_number)
            if target is not None:
                makeup.original_schedule_id = target.schedule_id
                makeup.original_session_date = target.session_date
            else:
                _detach_removed_session_makeup(db, makeup, session_number, performed_by, now or utc_now())
        db.flush()

    # delete-orphan xóa buổi cũ cùng điểm danh và lịch sử dời lịch
    class_obj.schedules = new_schedules
    if dates:
        class_obj.end_date = dates[-1]
    db.flush()
    return new_schedules


def _detach_removed_session_makeup(
    db: Session,
    makeup: MakeupClass,
    session_number: int,
    performed_by: Optional[str],
    now: datetime,
) -> None:
    reason = f"Session {session_number} removed by schedule regeneration"
    if makeup.status == MakeupStatus.cancelled:
        makeup.original_schedule_id = None
        return
    previous = MakeupClassRead.model_validate(makeup).model_dump(mode="json")
    if makeup.status == MakeupStatus.completed:
        audit_log_crud.create_audit_log(
            db, "makeup_cancel_for_regeneration", makeup.makeup_id, performed_by, now,
            reason=reason, previous_data=previous,
        )
        stamp = f"Cancelled: {reason.lower()}"
        makeup.notes = f"{makeup.notes}\n{stamp}" if makeup.notes else stamp
        makeup.status = MakeupStatus.cancelled
        makeup.original_schedule_id = None
        return
    audit_log_crud.create_audit_log(
        db, "makeup_delete_for_regeneration", makeup.makeup_id, performed_by, now,
        reason=reason, previous_data=previous,
    )
    db.delete(makeup)


def add_schedule_change(
    db: Session,
    schedule: ClassSchedule,
    from_date: date,
    to_date: date,
    reason: Optional[str],
    changed_by: Optional[str],
    changed_at: datetime,
) -> ScheduleChange:
    change = ScheduleChange(
        schedule_id=schedule.schedule_id,
        from_date=from_date,
        to_date=to_date,
        reason=reason,
        changed_by=changed_by,
        changed_at=changed_at,
    )
    db.add(change)
    return change

# school_scheduler/services/class_service.py
import logging
from datetime import date, datetime
from typing import Dict, List, Optional, Set, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from school_scheduler.crud import attendance_crud, class_crud, schedule_crud
from school_scheduler.exceptions import (
    ConflictError, InvalidStateTransitionError, SchedulingError, ValidationError,
)
from school_scheduler.models.attendance_model import PRESENT_ATTENDANCE_STATUSES
from school_scheduler.models.class_model import Class, ClassStatus, TERMINAL_CLASS_STATUSES
from school_scheduler.models.schedule_model import OPEN_SCHEDULE_STATUSES, ScheduleStatus
from school_scheduler.schemas.class_schema import (
    ClassCreate, ClassStatistics, ClassUpdate, EditableFields, EndClassPreview, EndClassResult,
)
from school_scheduler.schemas.schedule_schema import BatchDetail, BatchError, BatchResult
from school_scheduler.config import GENERATION_HORIZON_DAYS
from school_scheduler.services import availability_service, holiday_service, schedule_service, service_helper
from school_scheduler.services.schedule_service import get_class_or_404

logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# STATE MACHINE
# ---------------------------------------------------------
CLASS_TRANSITIONS: Dict[ClassStatus, Set[ClassStatus]] = {
    ClassStatus.draft: {ClassStatus.published, ClassStatus.cancelled},
    ClassStatus.published: {ClassStatus.started, ClassStatus.cancelled},
    ClassStatus.started: {ClassStatus.completed, ClassStatus.cancelled},
    ClassStatus.completed: set(),
    ClassStatus.cancelled: set(),
}

# Nhóm trường của ClassUpdate
FIELD_GROUPS = {
    "name": "basic_info",
    "code": "basic_info",
    "subject_id": "basic_info",
    "start_date": "schedule",
    "total_sessions": "schedule",
    "days_of_week": "schedule",
    "start_time": "schedule",
    "end_time": "schedule",
    "teacher_id": "resources",
    "branch_id": "resources",
    "room_id": "resources",
    "max_students": "capacity",
    "min_students": "capacity",
}

SCHEDULE_FIELDS = {"start_date", "total_sessions", "days_of_week", "start_time", "end_time"}
# Thay đổi các trường này cần kiểm tra lại phòng
ROOM_CHECK_FIELDS = {"branch_id", "room_id", "start_date", "total_sessions", "days_of_week", "start_time", "end_time"}


def editable_fields(status: ClassStatus, enrolled_count: int) -> EditableFields:
    """
    Quyền sửa theo trạng thái lớp (suy ra, không lưu):
    - draft, hoặc published chưa có học sinh: sửa toàn bộ
    - published đã có học sinh: chỉ thông tin cơ bản, sĩ số, trạng thái
    - started: chỉ thông tin cơ bản, trạng thái
    - completed / cancelled: không sửa gì
    """
    if status == ClassStatus.draft or (status == ClassStatus.published and enrolled_count == 0):
        return EditableFields(
            basic_info=True, schedule=True, resources=True, pricing=True, capacity=True, status=True
        )
    if status == ClassStatus.published:
        return EditableFields(basic_info=True, capacity=True, status=True)
    if status == ClassStatus.started:
        return EditableFields(basic_info=True, status=True)
    return EditableFields()


def _today(now: Union[datetime, date, None]) -> date:
    return service_helper.today(now)


def _raise_if_room_taken(db: Session, values: dict, exclude_class_id: Optional[int] = None):
    availability = availability_service.check_room_availability(
        db,
        branch_id=values["branch_id"],
        room_id=values["room_id"],
        days_of_week=values["days_of_week"],
        start_time=values["start_time"],
        end_time=values["end_time"],
        start_date=values["start_date"],
        end_date=values["end_date"],
        exclude_class_id=exclude_class_id,
    )
    if not availability.available:
        raise ConflictError(
            "Room is already booked for this time",
            rule="room_conflict",
            room_id=values["room_id"],
            conflicts=[c.model_dump(mode="json") for c in availability.conflicts],
        )


def _planned_dates(db: Session, branch_id: int, values: dict) -> List[date]:
    holidays = holiday_service.holiday_set(
        db, branch_id, values["start_date"], GENERATION_HORIZON_DAYS
    )
    return schedule_service.generate(values["start_date"], values["days_of_week"], values["total_sessions"], holidays)


# ---------------------------------------------------------
# CRUD
# ---------------------------------------------------------

def get_class(db: Session, class_id: int) -> Class:
    return get_class_or_404(db, class_id)


def get_classes(db: Session, branch_id: Optional[int] = None, status: Optional[ClassStatus] = None,
                skip: int = 0, limit: int = 100) -> List[Class]:
    return class_crud.get_classes(db, branch_id=branch_id, statuses=[status] if status else None, skip=skip, limit=limit)


def create_class(db: Session, class_in: ClassCreate) -> Class:
    """
    Tạo lớp ở trạng thái draft.
    Nếu đã có thứ học, ngày kết thúc được tính từ lịch dự kiến và phòng được kiểm tra.
    """
    if class_crud.code_exists(db, class_in.code):
        raise ConflictError("Class code already exists", rule="duplicate_code", code=class_in.code)

    values = class_in.model_dump()
    end_date = class_in.start_date
    if class_in.days_of_week:
        end_date = _planned_dates(db, class_in.branch_id, values)[-1]
        values["end_date"] = end_date
        if not class_in.allow_conflicts:
            _raise_if_room_taken(db, values)

    try:
        db_class = class_crud.create_class(db, class_in, end_date)
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("Class could not be created", rule="integrity", code=class_in.code) from e
    logger.info("Created class %s (%s)", db_class.code, db_class.class_id)
    return db_class


def update_class(db: Session, class_id: int, class_in: ClassUpdate) -> Class:
    """
    Cập nhật lớp theo quyền sửa hiện tại.
    Đổi lịch học sẽ sinh lại toàn bộ buổi học trong cùng giao dịch.
    """
    db_class = get_class_or_404(db, class_id)
    flags = editable_fields(db_class.status, db_class.enrolled_count)

    requested = class_in.model_dump(exclude_unset=True, exclude={"allow_conflicts"})
    changes = {k: v for k, v in requested.items() if v is not None and getattr(db_class, k) != v}
    if not changes:
        return db_class

    # 1. Quyền sửa
    locked = sorted(
        field for field in changes
        if not getattr(flags, FIELD_GROUPS.get(field, "status"))
    )
    if locked:
        raise ValidationError(
            "Some fields cannot be edited in the current class status",
            rule="field_locked", class_id=class_id, status=db_class.status.value, fields=locked,
        )

    # 2. Giá trị sau khi áp dụng
    merged = {column: getattr(db_class, column) for column in FIELD_GROUPS}
    merged.update(end_date=db_class.end_date, enrolled_count=db_class.enrolled_count)
    merged.update(changes)

    if merged["start_time"] >= merged["end_time"]:
        raise ValidationError("start_time must be before end_time", rule="time_window", class_id=class_id)
    if merged["min_students"] > merged["max_students"]:
        raise ValidationError("min_students must not exceed max_students", rule="capacity", class_id=class_id)
    if merged["enrolled_count"] > merged["max_students"]:
        raise ValidationError(
            "enrolled_count must not exceed max_students", rule="capacity", class_id=class_id,
            enrolled_count=merged["enrolled_count"], max_students=merged["max_students"],
        )
    if db_class.status != ClassStatus.draft and not merged["days_of_week"]:
        raise ValidationError("days_of_week must not be empty", rule="empty_day_pattern", class_id=class_id)
    if "code" in changes and class_crud.code_exists(db, changes["code"], exclude_class_id=class_id):
        raise ConflictError("Class code already exists", rule="duplicate_code", code=changes["code"])

    # 3. Lịch dự kiến + kiểm tra phòng
    schedule_changed = bool(SCHEDULE_FIELDS & set(changes))
    dates: List[date] = []
    if schedule_changed and merged["days_of_week"]:
        dates = _planned_dates(db, merged["branch_id"], merged)
        merged["end_date"] = dates[-1]
    if ROOM_CHECK_FIELDS & set(changes) and merged["days_of_week"] and not class_in.allow_conflicts:
        _raise_if_room_taken(db, merged, exclude_class_id=class_id)

    # 4. Ghi
    try:
        for field, value in changes.items():
            setattr(db_class, field, value)
        db_class.end_date = merged["end_date"]
        if schedule_changed and dates and (db_class.schedules or db_class.status != ClassStatus.draft):
            schedule_crud.replace_class_schedules(db, db_class, dates)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("Class update conflicts with existing data", rule="integrity", class_id=class_id) from e
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(db_class)
    logger.info("Updated class %s: %s", db_class.code, sorted(changes))
    return db_class


# ---------------------------------------------------------
# LIFECYCLE
# ---------------------------------------------------------

def _future_open_sessions(db_class: Class, today: date):
    return [
        s for s in db_class.schedules
        if s.status != ScheduleStatus.cancelled and s.session_date > today
    ]


def transition_class_status(
    db: Session,
    class_id: int,
    target: ClassStatus,
    actor: Optional[str] = None,
    now: Union[datetime, date, None] = None,
) -> Class:
    db_class = get_class_or_404(db, class_id)
    current = db_class.status
    today = _today(now)

    if target not in CLASS_TRANSITIONS[current]:
        raise InvalidStateTransitionError(
            f"Cannot move class from {current.value} to {target.value}",
            current=current, target=target, class_id=class_id,
        )

    try:
        if target == ClassStatus.published:
            if not db_class.days_of_week:
                raise ValidationError("days_of_week must not be empty", rule="empty_day_pattern", class_id=class_id)
            schedule_service.rebuild_sessions(db, db_class)

        elif target == ClassStatus.started:
            if today < db_class.start_date:
                raise InvalidStateTransitionError(
                    "Class cannot start before its start date",
                    current=current, target=target, class_id=class_id,
                    start_date=db_class.start_date.isoformat(),
                )

        elif target == ClassStatus.completed:
            future = _future_open_sessions(db_class, today)
            if today <= db_class.end_date or future:
                raise InvalidStateTransitionError(
                    "Class still has sessions to hold",
                    current=current, target=target, class_id=class_id,
                    end_date=db_class.end_date.isoformat(), future_sessions=len(future),
                )

        elif target == ClassStatus.cancelled:
            for schedule in db_class.schedules:
                if schedule.status in OPEN_SCHEDULE_STATUSES:
                    schedule.status = ScheduleStatus.cancelled
                    schedule.note = "Class cancelled"

        db_class.status = target
        db.commit()
    except (SchedulingError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(db_class)
    logger.info("Class %s: %s -> %s by %s", db_class.code, current.value, target.value, actor or "system")
    return db_class


def update_class_statuses(db: Session, now: Union[datetime, date, None] = None) -> BatchResult:
    """
    Tác vụ định kỳ: published -> started khi đến ngày khai giảng,
    started -> completed khi đã qua ngày kết thúc và không còn buổi học phía trước.
    Đọc snapshot rồi ghi có điều kiện, lỗi từng lớp không dừng cả đợt.
    """
    today = _today(now)
    result = BatchResult()

    candidates = class_crud.get_classes(db, statuses=[ClassStatus.published, ClassStatus.started], limit=None)
    for db_class in candidates:
        class_id, name = db_class.class_id, db_class.name
        if db_class.status == ClassStatus.published and today >= db_class.start_date:
            expected, target = ClassStatus.published, ClassStatus.started
        elif (
            db_class.status == ClassStatus.started
            and today > db_class.end_date
            and not _future_open_sessions(db_class, today)
        ):
            expected, target = ClassStatus.started, ClassStatus.completed
        else:
            continue

        try:
            changed = class_crud.compare_and_set_status(db, class_id, expected, target)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Status sweep failed for class %s", class_id, exc_info=True)
            result.errors.append(BatchError(class_id=class_id, message=str(e), rule="database"))
            continue
        if not changed:
            # Lớp đã bị đổi trạng thái bởi thao tác khác
            continue
        result.processed_count += 1
        result.details.append(BatchDetail(class_id=class_id, class_name=name, action=f"{expected.value} -> {target.value}"))

    logger.info("Class status sweep: %d updated, %d errors", result.processed_count, len(result.errors))
    return result


def end_class_now(db: Session, class_id: int, now: Union[datetime, date, None] = None) -> EndClassResult:
    """
    Kết thúc lớp ngay: ngày kết thúc mới là buổi gần nhất đã qua (hoặc hôm nay
    nếu chưa có buổi nào), hủy mọi buổi phía sau và chuyển lớp sang completed.
    """
    db_class = get_class_or_404(db, class_id)
    today = _today(now)
    if db_class.status in TERMINAL_CLASS_STATUSES:
        raise InvalidStateTransitionError(
            f"Cannot end a {db_class.status.value} class",
            current=db_class.status, target=ClassStatus.completed, class_id=class_id,
        )

    past_dates = [
        s.session_date for s in db_class.schedules
        if s.status != ScheduleStatus.cancelled and s.session_date <= today
    ]
    new_end_date = max(past_dates) if past_dates else today

    cancelled = 0
    try:
        for schedule in db_class.schedules:
            if schedule.session_date > today and schedule.status in OPEN_SCHEDULE_STATUSES:
                schedule.status = ScheduleStatus.cancelled
                schedule.note = "Class ended early"
                cancelled += 1
        db_class.end_date = new_end_date
        db_class.status = ClassStatus.completed
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Class %s ended on %s, %d sessions cancelled", db_class.code, new_end_date, cancelled)
    return EndClassResult(class_id=class_id, new_end_date=new_end_date, cancelled_sessions=cancelled)


def get_end_class_preview(db: Session, class_id: int, now: Union[datetime, date, None] = None) -> EndClassPreview:
    db_class = get_class_or_404(db, class_id)
    today = _today(now)
    active = [s for s in db_class.schedules if s.status != ScheduleStatus.cancelled]
    past = [s for s in active if s.session_date <= today]
    return EndClassPreview(
        last_session_date=max((s.session_date for s in past), default=None),
        completed_sessions=sum(1 for s in active if s.status == ScheduleStatus.completed),
        future_sessions=len(active) - len(past),
        total_sessions=len(db_class.schedules),
    )


def get_class_statistics(db: Session, class_id: int, now: Union[datetime, date, None] = None) -> ClassStatistics:
    db_class = get_class_or_404(db, class_id)
    today = _today(now)
    schedules = db_class.schedules

    counts = attendance_crud.count_by_class(db, class_id)
    total_records = sum(counts.values())
    present = sum(counts.get(s, 0) for s in PRESENT_ATTENDANCE_STATUSES)

    return ClassStatistics(
        total_sessions=len(schedules),
        completed_sessions=sum(1 for s in schedules if s.status == ScheduleStatus.completed),
        upcoming_sessions=sum(1 for s in schedules if s.status in OPEN_SCHEDULE_STATUSES and s.session_date >= today),
        cancelled_sessions=sum(1 for s in schedules if s.status == ScheduleStatus.cancelled),
        attendance_rate=round(present * 100 / total_records, 1) if total_records else 0.0,
    )

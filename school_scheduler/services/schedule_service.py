# school_scheduler/services/schedule_service.py
import logging
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from school_scheduler.config import GENERATION_HORIZON_DAYS, HOLIDAY_RESCHEDULE_WINDOW_DAYS
from school_scheduler.crud import class_crud, schedule_crud
from school_scheduler.exceptions import (
    ConflictError, InvalidStateTransitionError, NotFoundError, SchedulingError, ValidationError,
)
from school_scheduler.models.class_model import ACTIVE_CLASS_STATUSES, Class, ClassStatus, TERMINAL_CLASS_STATUSES
from school_scheduler.models.holiday_model import HolidayType
from school_scheduler.models.schedule_model import ClassSchedule, OPEN_SCHEDULE_STATUSES, ScheduleStatus
from school_scheduler.schemas.schedule_schema import BatchDetail, BatchError, BatchResult, SessionOnDate
from school_scheduler.services import holiday_service
from school_scheduler.services.service_helper import to_date_key, utc_now, weekday_index

logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# GENERATOR
# ---------------------------------------------------------

def generate(
    start_date: date,
    days_of_week: Iterable[int],
    total_sessions: int,
    holiday_set: Iterable = (),
    max_scan_days: int = GENERATION_HORIZON_DAYS,
) -> List[date]:
    """
    Sinh danh sách ngày học: đi từng ngày kể từ `start_date`, nhận ngày có thứ
    thuộc `days_of_week` và không nằm trong `holiday_set`, dừng khi đủ
    `total_sessions` ngày. Tham lam, tất định, không quay lui.
    """
    days = set(days_of_week or [])
    if not days:
        raise ValidationError("days_of_week must not be empty", rule="empty_day_pattern")
    invalid = sorted(d for d in days if not isinstance(d, int) or d < 0 or d > 6)
    if invalid:
        raise ValidationError("days_of_week must be within 0..6", rule="invalid_weekday", days_of_week=invalid)
    if total_sessions is None or total_sessions <= 0:
        raise ValidationError(
            "total_sessions must be positive", rule="invalid_total_sessions", total_sessions=total_sessions
        )

    holidays = {to_date_key(h) for h in holiday_set}
    start_date = to_date_key(start_date)
    dates: List[date] = []
    for offset in range(max_scan_days):
        day = start_date + timedelta(days=offset)
        if weekday_index(day) in days and day not in holidays:
            dates.append(day)
            if len(dates) == total_sessions:
                return dates

    raise ValidationError(
        f"Only {len(dates)} of {total_sessions} sessions fit within {max_scan_days} days",
        rule="generation_horizon",
        generated=len(dates),
        total_sessions=total_sessions,
        max_scan_days=max_scan_days,
    )


def compute_session_dates(db: Session, db_class: Class) -> List[date]:
    holidays = holiday_service.holiday_set(db, db_class.branch_id, db_class.start_date, GENERATION_HORIZON_DAYS)
    return generate(db_class.start_date, db_class.days_of_week, db_class.total_sessions, holidays)


def get_class_or_404(db: Session, class_id: int) -> Class:
    db_class = class_crud.get_class(db, class_id)
    if db_class is None:
        raise NotFoundError("Class not found", class_id=class_id)
    return db_class


def get_schedule_or_404(db: Session, schedule_id: int) -> ClassSchedule:
    schedule = schedule_crud.get_schedule(db, schedule_id)
    if schedule is None:
        raise NotFoundError("Session not found", schedule_id=schedule_id)
    return schedule


def rebuild_sessions(db: Session, db_class: Class) -> List[ClassSchedule]:
    """Tính lại và thay bộ buổi học của lớp. Không commit (người gọi giữ giao dịch)."""
    if db_class.status in TERMINAL_CLASS_STATUSES:
        raise ValidationError(
            "Sessions of a finished class cannot be regenerated",
            rule="class_terminal", class_id=db_class.class_id, status=db_class.status.value,
        )
    dates = compute_session_dates(db, db_class)
    return schedule_crud.replace_class_schedules(db, db_class, dates)


def generate_sessions(db: Session, class_id: int) -> List[ClassSchedule]:
    """(Re)generate toàn bộ buổi học của một lớp trong một giao dịch."""
    db_class = get_class_or_404(db, class_id)
    try:
        schedules = rebuild_sessions(db, db_class)
        db.commit()
    except (SchedulingError, SQLAlchemyError):
        db.rollback()
        raise
    logger.info("Generated %d sessions for class %s (end %s)", len(schedules), db_class.code, db_class.end_date)
    return schedule_crud.get_schedules_by_class(db, class_id)


def regenerate_all(db: Session) -> BatchResult:
    """
    Sinh lại lịch cho mọi lớp chưa kết thúc.
    Mỗi lớp là một giao dịch riêng; lỗi của một lớp được ghi lại và không dừng cả đợt.
    """
    result = BatchResult()
    for class_id in class_crud.get_class_ids_by_status(db, ACTIVE_CLASS_STATUSES):
        db_class = class_crud.get_class(db, class_id)
        if db_class is None:
            continue
        if db_class.status == ClassStatus.draft and not db_class.days_of_week:
            continue
        try:
            schedules = rebuild_sessions(db, db_class)
            db.commit()
        except SchedulingError as e:
            db.rollback()
            logger.warning("Regeneration failed for class %s: %s", class_id, e.message)
            result.errors.append(BatchError(class_id=class_id, message=e.message, rule=e.rule))
            continue
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Regeneration failed for class %s", class_id, exc_info=True)
            result.errors.append(BatchError(class_id=class_id, message=str(e), rule="database"))
            continue
        result.processed_count += 1
        result.details.append(BatchDetail(
            class_id=class_id, class_name=db_class.name, action=f"regenerated {len(schedules)} sessions",
        ))

    logger.info("Regenerated %d classes, %d errors", result.processed_count, len(result.errors))
    return result


# ---------------------------------------------------------
# RESCHEDULE
# ---------------------------------------------------------

def find_next_available_date(db: Session, class_id: int, from_date: date, max_date: date) -> Optional[date]:
    """
    Ngày đầu tiên sau `from_date` khớp thứ học của lớp, không phải ngày nghỉ
    của chi nhánh và lớp chưa có buổi nào vào ngày đó. None nếu vượt `max_date`.
    """
    db_class = get_class_or_404(db, class_id)
    from_date, max_date = to_date_key(from_date), to_date_key(max_date)
    days = set(db_class.days_of_week or [])
    if not days or max_date <= from_date:
        return None

    index = holiday_service.build_index(db, db_class.branch_id, from_date, max_date)
    taken = {
        s.session_date for s in schedule_crud.get_schedules_by_class(db, class_id)
        if s.status != ScheduleStatus.cancelled
    }

    day = from_date + timedelta(days=1)
    while day <= max_date:
        if weekday_index(day) in days and day not in taken and not index.is_holiday(day, db_class.branch_id):
            return day
        day += timedelta(days=1)
    return None


def reschedule_session(
    db: Session,
    schedule_id: int,
    new_date: date,
    reason: Optional[str],
    actor: Optional[str],
    now: Optional[datetime] = None,
) -> ClassSchedule:
    """
    Dời một buổi học sang ngày khác.
    `original_date` là ngày ban đầu (chỉ ghi ở lần dời đầu tiên),
    mọi lần dời đều được ghi vào schedule_changes.
    """
    schedule = get_schedule_or_404(db, schedule_id)
    new_date = to_date_key(new_date)
    now = now or utc_now()

    if schedule.status not in OPEN_SCHEDULE_STATUSES:
        raise InvalidStateTransitionError(
            f"Cannot reschedule a {schedule.status.value} session",
            current=schedule.status, target=ScheduleStatus.rescheduled, schedule_id=schedule_id,
        )
    if new_date == schedule.session_date:
        raise ValidationError("New date is the same as the current date", rule="same_date", schedule_id=schedule_id)

    for other in schedule_crud.get_schedules_by_class(db, schedule.class_id):
        if other.schedule_id != schedule_id and other.session_date == new_date and other.status != ScheduleStatus.cancelled:
            raise ConflictError(
                "The class already has a session on that date",
                rule="session_exists", schedule_id=schedule_id,
                conflicting_schedule_id=other.schedule_id, date=new_date.isoformat(),
            )

    db_class = schedule.class_info
    index = holiday_service.build_index(db, db_class.branch_id, new_date, new_date)
    holiday_name = index.holiday_name(new_date, db_class.branch_id)
    if holiday_name is not None:
        raise ConflictError(
            f"{new_date.isoformat()} is a holiday ({holiday_name})",
            rule="holiday", schedule_id=schedule_id, date=new_date.isoformat(), holiday=holiday_name,
        )

    from_date = schedule.session_date
    if schedule.original_date is None:
        schedule.original_date = from_date
    schedule.session_date = new_date
    schedule.status = ScheduleStatus.rescheduled
    schedule.rescheduled_at = now
    schedule.rescheduled_by = actor
    schedule.note = reason
    schedule_crud.add_schedule_change(db, schedule, from_date, new_date, reason, actor, now)

    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(schedule)
    logger.info("Session %s of class %s moved %s -> %s by %s", schedule.session_number, schedule.class_id, from_date, new_date, actor)
    return schedule


def cancel_session(db: Session, schedule_id: int, reason: str, actor: Optional[str], now: Optional[datetime] = None) -> ClassSchedule:
    schedule = get_schedule_or_404(db, schedule_id)
    if schedule.status not in OPEN_SCHEDULE_STATUSES:
        raise InvalidStateTransitionError(
            f"Cannot cancel a {schedule.status.value} session",
            current=schedule.status, target=ScheduleStatus.cancelled, schedule_id=schedule_id,
        )
    schedule.status = ScheduleStatus.cancelled
    schedule.note = reason
    schedule.rescheduled_by = actor
    schedule.rescheduled_at = now or utc_now()
    db.commit()
    db.refresh(schedule)
    return schedule


def get_reschedule_history(db: Session, class_id: int) -> List[ClassSchedule]:
    get_class_or_404(db, class_id)
    return schedule_crud.get_rescheduled_schedules(db, class_id)


# ---------------------------------------------------------
# HOLIDAY BULK RESCHEDULE
# ---------------------------------------------------------

def get_sessions_on_date(db: Session, day: date, branch_id: Optional[int] = None) -> List[SessionOnDate]:
    """Xem trước các buổi học sẽ bị ảnh hưởng nếu `day` trở thành ngày nghỉ."""
    sessions = schedule_crud.get_schedules_on_date(
        db, to_date_key(day), branch_id=branch_id, statuses=[ScheduleStatus.scheduled]
    )
    return [
        SessionOnDate(
            schedule_id=s.schedule_id,
            class_id=s.class_id,
            class_name=s.class_info.name,
            session_number=s.session_number,
            branch_id=s.class_info.branch_id,
        )
        for s in sessions
        if s.class_info.status in ACTIVE_CLASS_STATUSES
    ]


def reschedule_for_holiday(
    db: Session, day: date, branch_id: Optional[int], actor: str, now: Optional[datetime] = None
) -> BatchResult:
    """
    Dời mọi buổi học `scheduled` rơi vào ngày nghỉ sang ngày trống tiếp theo
    (trong vòng HOLIDAY_RESCHEDULE_WINDOW_DAYS ngày). Thành công từng phần.
    """
    day = to_date_key(day)
    max_date = day + timedelta(days=HOLIDAY_RESCHEDULE_WINDOW_DAYS)
    result = BatchResult()

    for item in get_sessions_on_date(db, day, branch_id):
        try:
            next_date = find_next_available_date(db, item.class_id, day, max_date)
            if next_date is None:
                raise ConflictError(
                    "No available date found within the reschedule window",
                    rule="no_available_date", schedule_id=item.schedule_id,
                )
            reschedule_session(db, item.schedule_id, next_date, f"Holiday on {day.isoformat()}", actor, now)
        except SchedulingError as e:
            db.rollback()
            logger.warning("Holiday reschedule failed for session %s: %s", item.schedule_id, e.message)
            result.errors.append(BatchError(class_id=item.class_id, message=e.message, rule=e.rule))
            continue
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Holiday reschedule failed for session %s", item.schedule_id, exc_info=True)
            result.errors.append(BatchError(class_id=item.class_id, message=str(e), rule="database"))
            continue
        result.processed_count += 1
        result.details.append(BatchDetail(
            class_id=item.class_id,
            class_name=item.class_name,
            action=f"session {item.session_number} moved to {next_date.isoformat()}",
        ))

    logger.info("Holiday %s: moved %d sessions, %d errors", day, result.processed_count, len(result.errors))
    return result


def reschedule_sessions_for_holiday(db: Session, holiday, actor: str, now: Optional[datetime] = None) -> BatchResult:
    """Áp dụng một ngày nghỉ: quốc gia thì mọi chi nhánh, chi nhánh thì từng chi nhánh trong danh sách."""
    if holiday.type == HolidayType.national:
        return reschedule_for_holiday(db, holiday.date, None, actor, now)

    result = BatchResult()
    for branch_id in holiday.branches or []:
        partial = reschedule_for_holiday(db, holiday.date, branch_id, actor, now)
        result.processed_count += partial.processed_count
        result.details.extend(partial.details)
        result.errors.extend(partial.errors)
    return result

# school_scheduler/services/makeup_service.py
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from school_scheduler.crud import attendance_crud, makeup_crud
from school_scheduler.exceptions import (
    ConflictError, InvalidStateTransitionError, LimitExceededError, NotFoundError, ValidationError,
)
from school_scheduler.models.attendance_model import AttendanceStatus
from school_scheduler.models.makeup_model import MakeupClass, MakeupStatus, MakeupType
from school_scheduler.schemas.makeup_schema import (
    MakeupAttendanceIn, MakeupCancelIn, MakeupClassRead, MakeupDeleteForSchedule, MakeupEligibility,
    MakeupRequestCreate, MakeupRevertIn, MakeupScheduleIn, MakeupStats,
)
from school_scheduler.schemas.settings_schema import MakeupPolicy
from school_scheduler.services import availability_service, settings_service
from school_scheduler.services.audit_service import AuditLogger
from school_scheduler.services.notification_service import Notifier, OutboxNotifier, notify_safely
from school_scheduler.services.schedule_service import get_class_or_404, get_schedule_or_404
from school_scheduler.services.service_helper import today, utc_now

logger = logging.getLogger(__name__)

# ---------------------------------------------------------
# STATE MACHINE
# ---------------------------------------------------------
MAKEUP_TRANSITIONS: Dict[MakeupStatus, Set[MakeupStatus]] = {
    MakeupStatus.pending: {MakeupStatus.scheduled, MakeupStatus.cancelled},
    MakeupStatus.scheduled: {MakeupStatus.completed, MakeupStatus.cancelled},
    MakeupStatus.completed: {MakeupStatus.scheduled},
    MakeupStatus.cancelled: set(),
}


def can_transition(current: MakeupStatus, target: MakeupStatus) -> bool:
    return target in MAKEUP_TRANSITIONS.get(current, set())


def ensure_transition(makeup: MakeupClass, target: MakeupStatus) -> None:
    if not can_transition(makeup.status, target):
        raise InvalidStateTransitionError(
            f"Cannot move makeup from {makeup.status.value} to {target.value}",
            current=makeup.status, target=target, makeup_id=makeup.makeup_id,
        )


def get_makeup_or_404(db: Session, makeup_id: int) -> MakeupClass:
    makeup = makeup_crud.get_makeup(db, makeup_id)
    if makeup is None:
        raise NotFoundError("Makeup class not found", makeup_id=makeup_id)
    return makeup


def snapshot(makeup: MakeupClass) -> dict:
    return MakeupClassRead.model_validate(makeup).model_dump(mode="json")


def _commit(db: Session) -> None:
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise


# ---------------------------------------------------------
# CREATE
# ---------------------------------------------------------

def can_create_makeup(
    db: Session,
    student_id: int,
    class_id: int,
    bypass: bool = False,
    policy: Optional[MakeupPolicy] = None,
) -> MakeupEligibility:
    """
    Kiểm tra trước (không ghi gì) học sinh còn được tạo makeup trong lớp hay không.
    limit = 0 nghĩa là không giới hạn.
    """
    policy = policy or settings_service.get_makeup_policy(db)
    if not policy.auto_create_makeup and not bypass:
        return MakeupEligibility(
            allowed=False, current_count=0, limit=0, message="Makeup creation is disabled",
        )

    current_count = makeup_crud.count_active_for_student_class(db, student_id, class_id)
    limit = policy.makeup_limit_per_course
    if limit == 0 or bypass:
        return MakeupEligibility(allowed=True, current_count=current_count, limit=limit)

    if current_count >= limit:
        return MakeupEligibility(
            allowed=False, current_count=current_count, limit=limit,
            message=f"Makeup limit reached ({current_count}/{limit})",
        )
    return MakeupEligibility(allowed=True, current_count=current_count, limit=limit)


def create_makeup_request(
    db: Session,
    request: MakeupRequestCreate,
    policy: Optional[MakeupPolicy] = None,
    now: Optional[datetime] = None,
) -> MakeupClass:
    """
    Tạo yêu cầu học bù (pending) cho một buổi học học sinh đã vắng.
    1. Cấu hình cho phép tạo (hoặc quản lý bỏ qua cấu hình)
    2. Chưa có makeup nào đang hoạt động cho (học sinh, lớp, buổi)
    3. Chưa vượt giới hạn makeup của học sinh trong lớp
    4. Còn trong hạn yêu cầu
    Thành công thì điểm danh gốc của học sinh được ghi thành `absent`.
    """
    policy = policy or settings_service.get_makeup_policy(db)
    request_day = today(now)
    now = now or utc_now()
    bypass = request.bypass_policy

    db_class = get_class_or_404(db, request.class_id)
    schedule = get_schedule_or_404(db, request.schedule_id)
    if schedule.class_id != db_class.class_id:
        raise ValidationError(
            "Session does not belong to the class", rule="schedule_class_mismatch",
            class_id=request.class_id, schedule_id=request.schedule_id,
        )

    key = dict(student_id=request.student_id, class_id=request.class_id, schedule_id=request.schedule_id)
    current_count = makeup_crud.count_active_for_student_class(db, request.student_id, request.class_id)

    if not policy.auto_create_makeup and not bypass:
        raise LimitExceededError(
            "Makeup creation is disabled", current_count=current_count, limit=0,
            rule="auto_create_disabled", **key,
        )

    existing = makeup_crud.get_active_for_key(db, request.student_id, request.class_id, request.schedule_id)
    if existing is not None:
        raise ConflictError(
            "A makeup class already exists for this session",
            rule="duplicate_makeup", makeup_id=existing.makeup_id, status=existing.status.value, **key,
        )

    limit = policy.makeup_limit_per_course
    if limit > 0 and current_count >= limit and not bypass:
        raise LimitExceededError(
            f"Makeup limit reached ({current_count}/{limit})",
            current_count=current_count, limit=limit, **key,
        )

    if policy.request_deadline_days > 0 and not bypass:
        deadline = schedule.session_date + timedelta(days=policy.request_deadline_days)
        if request_day > deadline:
            raise ValidationError(
                "The makeup request deadline has passed", rule="request_deadline",
                deadline=deadline.isoformat(), **key,
            )

    makeup = MakeupClass(
        type=request.type,
        student_id=request.student_id,
        original_class_id=db_class.class_id,
        original_schedule_id=schedule.schedule_id,
        original_session_number=schedule.session_number,
        original_session_date=schedule.session_date,
        branch_id=db_class.branch_id,
        class_name=db_class.name,
        student_name=request.student_name,
        request_date=now,
        requested_by=request.requested_by,
        reason=request.reason,
        status=MakeupStatus.pending,
        notes=request.notes,
    )
    try:
        makeup_crud.insert_makeup(db, makeup)
        attendance_crud.upsert_attendance(
            db,
            schedule_id=schedule.schedule_id,
            student_id=request.student_id,
            status=AttendanceStatus.absent,
            note=f"Makeup requested (#{makeup.makeup_id}): {request.reason}",
            checked_by=request.requested_by,
            checked_at=now,
        )
        db.commit()
    except IntegrityError as e:
        # Hai yêu cầu đồng thời cho cùng một khóa: index unique chặn yêu cầu thứ hai
        db.rollback()
        raise ConflictError(
            "A makeup class already exists for this session", rule="duplicate_makeup", **key
        ) from e
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(makeup)
    logger.info(
        "Makeup %s created for student %s, class %s, session %s%s",
        makeup.makeup_id, request.student_id, request.class_id, schedule.session_number,
        " (policy bypassed)" if bypass else "",
    )
    return makeup


# ---------------------------------------------------------
# SCHEDULE
# ---------------------------------------------------------

def _check_slot(db: Session, makeup: MakeupClass, slot: MakeupScheduleIn, policy: MakeupPolicy) -> None:
    if policy.validity_days > 0 and not slot.bypass_policy and makeup.original_session_date is not None:
        expires = makeup.original_session_date + timedelta(days=policy.validity_days)
        if slot.date > expires:
            raise ValidationError(
                "The makeup slot is past the validity window", rule="validity_expired",
                makeup_id=makeup.makeup_id, expires=expires.isoformat(),
            )

    availability = availability_service.check_makeup_slot(
        db, slot.date, slot.start_time, slot.end_time,
        teacher_id=slot.teacher_id, branch_id=slot.branch_id, room_id=slot.room_id,
        exclude_makeup_id=makeup.makeup_id,
    )
    # Ngày nghỉ luôn chặn, trùng phòng / giáo viên có thể được quản lý bỏ qua
    blocking = [
        c for c in availability.conflicts
        if c.type == "holiday" or not slot.allow_conflicts
    ]
    if blocking:
        raise ConflictError(
            "The makeup slot is not available", rule="slot_conflict", makeup_id=makeup.makeup_id,
            conflicts=[c.model_dump(mode="json") for c in blocking],
        )


def _apply_slot(makeup: MakeupClass, slot: MakeupScheduleIn, now: datetime) -> None:
    makeup.makeup_date = slot.date
    makeup.makeup_start_time = slot.start_time
    makeup.makeup_end_time = slot.end_time
    makeup.makeup_teacher_id = slot.teacher_id
    makeup.makeup_branch_id = slot.branch_id
    makeup.makeup_room_id = slot.room_id
    makeup.makeup_confirmed_at = now
    makeup.makeup_confirmed_by = slot.confirmed_by


def schedule_makeup(
    db: Session,
    makeup_id: int,
    slot: MakeupScheduleIn,
    policy: Optional[MakeupPolicy] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> MakeupClass:
    """pending -> scheduled: gắn slot học bù sau khi kiểm tra phòng / giáo viên."""
    makeup = get_makeup_or_404(db, makeup_id)
    ensure_transition(makeup, MakeupStatus.scheduled)
    if makeup.status != MakeupStatus.pending:
        # completed -> scheduled chỉ đi qua revert_makeup_attendance
        raise InvalidStateTransitionError(
            "Only pending makeup classes can be scheduled",
            current=makeup.status, target=MakeupStatus.scheduled, makeup_id=makeup_id,
        )
    policy = policy or settings_service.get_makeup_policy(db)
    _check_slot(db, makeup, slot, policy)

    _apply_slot(makeup, slot, now or utc_now())
    makeup.status = MakeupStatus.scheduled
    _commit(db)
    db.refresh(makeup)
    logger.info("Makeup %s scheduled on %s by %s", makeup_id, slot.date, slot.confirmed_by)

    notify_safely(db, (notifier or OutboxNotifier(db)).send_makeup_scheduled, makeup)
    return makeup


def update_makeup_schedule(
    db: Session,
    makeup_id: int,
    slot: MakeupScheduleIn,
    policy: Optional[MakeupPolicy] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> MakeupClass:
    """Đổi slot của một makeup đã xếp lịch."""
    makeup = get_makeup_or_404(db, makeup_id)
    if makeup.status != MakeupStatus.scheduled:
        raise InvalidStateTransitionError(
            "Only scheduled makeup classes can be moved",
            current=makeup.status, target=MakeupStatus.scheduled, makeup_id=makeup_id,
        )
    policy = policy or settings_service.get_makeup_policy(db)
    _check_slot(db, makeup, slot, policy)

    _apply_slot(makeup, slot, now or utc_now())
    _commit(db)
    db.refresh(makeup)
    logger.info("Makeup %s moved to %s by %s", makeup_id, slot.date, slot.confirmed_by)

    notify_safely(db, (notifier or OutboxNotifier(db)).send_makeup_scheduled, makeup)
    return makeup


# ---------------------------------------------------------
# ATTENDANCE
# ---------------------------------------------------------

def record_makeup_attendance(
    db: Session, makeup_id: int, attendance_in: MakeupAttendanceIn, now: Optional[datetime] = None
) -> MakeupClass:
    """scheduled -> completed: điểm danh cho chính buổi học bù."""
    makeup = get_makeup_or_404(db, makeup_id)
    ensure_transition(makeup, MakeupStatus.completed)

    makeup.attendance_status = attendance_in.status
    makeup.attendance_checked_by = attendance_in.checked_by
    makeup.attendance_checked_at = now or utc_now()
    makeup.attendance_note = attendance_in.note
    makeup.status = MakeupStatus.completed
    _commit(db)
    db.refresh(makeup)
    logger.info("Makeup %s completed (%s)", makeup_id, attendance_in.status.value)
    return makeup


def update_makeup_attendance(
    db: Session,
    makeup_id: int,
    attendance_in: MakeupAttendanceIn,
    now: Optional[datetime] = None,
    audit: Optional[AuditLogger] = None,
) -> MakeupClass:
    """Sửa điểm danh của makeup đã hoàn thành (giữ trạng thái completed)."""
    makeup = get_makeup_or_404(db, makeup_id)
    if makeup.status != MakeupStatus.completed:
        raise InvalidStateTransitionError(
            "Attendance can only be corrected on a completed makeup class",
            current=makeup.status, target=MakeupStatus.completed, makeup_id=makeup_id,
        )
    now = now or utc_now()
    (audit or AuditLogger(db)).record(
        "makeup_attendance_update", makeup_id, attendance_in.checked_by, now,
        previous_data=snapshot(makeup),
    )
    makeup.attendance_status = attendance_in.status
    makeup.attendance_checked_by = attendance_in.checked_by
    makeup.attendance_checked_at = now
    makeup.attendance_note = attendance_in.note
    _commit(db)
    db.refresh(makeup)
    return makeup


def revert_makeup_attendance(
    db: Session,
    makeup_id: int,
    revert_in: MakeupRevertIn,
    now: Optional[datetime] = None,
    audit: Optional[AuditLogger] = None,
) -> MakeupClass:
    """
    completed -> scheduled: xóa điểm danh của buổi học bù nhưng giữ nguyên slot.
    Bắt buộc có lý do, thao tác được ghi vào audit log.
    """
    makeup = get_makeup_or_404(db, makeup_id)
    ensure_transition(makeup, MakeupStatus.scheduled)
    if makeup.status != MakeupStatus.completed:
        raise InvalidStateTransitionError(
            "Only completed makeup classes can be reverted",
            current=makeup.status, target=MakeupStatus.scheduled, makeup_id=makeup_id,
        )
    if not revert_in.reason or not revert_in.reason.strip():
        raise ValidationError("A reason is required to revert attendance", rule="reason_required", makeup_id=makeup_id)

    now = now or utc_now()
    (audit or AuditLogger(db)).record(
        "makeup_attendance_revert", makeup_id, revert_in.reverted_by, now,
        reason=revert_in.reason, previous_data=snapshot(makeup),
    )
    makeup.attendance_status = None
    makeup.attendance_checked_by = None
    makeup.attendance_checked_at = None
    makeup.attendance_note = None
    makeup.status = MakeupStatus.scheduled
    _commit(db)
    db.refresh(makeup)
    logger.info("Makeup %s attendance reverted by %s: %s", makeup_id, revert_in.reverted_by, revert_in.reason)
    return makeup


# ---------------------------------------------------------
# CANCEL / DELETE
# ---------------------------------------------------------

def cancel_makeup(db: Session, makeup_id: int, cancel_in: MakeupCancelIn, now: Optional[datetime] = None) -> MakeupClass:
    """Hủy mềm: bản ghi vẫn còn trong lịch sử nhưng không tính vào giới hạn."""
    makeup = get_makeup_or_404(db, makeup_id)
    ensure_transition(makeup, MakeupStatus.cancelled)

    stamp = f"Cancelled by {cancel_in.cancelled_by} at {(now or utc_now()):%Y-%m-%d %H:%M}: {cancel_in.reason}"
    makeup.notes = f"{makeup.notes}\n{stamp}" if makeup.notes else stamp
    makeup.status = MakeupStatus.cancelled
    _commit(db)
    db.refresh(makeup)
    logger.info("Makeup %s cancelled by %s", makeup_id, cancel_in.cancelled_by)
    return makeup


def delete_makeup_for_schedule(
    db: Session,
    request: MakeupDeleteForSchedule,
    now: Optional[datetime] = None,
    audit: Optional[AuditLogger] = None,
) -> Optional[str]:
    """
    Gỡ makeup khi điểm danh gốc được sửa lại thành có mặt.
    Makeup chưa diễn ra (pending / scheduled) bị xóa hẳn, makeup đã hoàn thành
    chỉ bị hủy mềm. Trả về "deleted", "cancelled" hoặc None nếu không có makeup.
    """
    makeup = makeup_crud.get_active_for_key(db, request.student_id, request.class_id, request.schedule_id)
    if makeup is None:
        return None

    now = now or utc_now()
    audit = audit or AuditLogger(db)
    makeup_id = makeup.makeup_id
    try:
        if makeup.status == MakeupStatus.completed:
            audit.record(
                "makeup_cancel_for_schedule", makeup_id, request.deleted_by, now,
                reason=request.reason, previous_data=snapshot(makeup),
            )
            # Ngoài bảng chuyển trạng thái công khai: completed -> cancelled chỉ đi qua đường này
            stamp = f"Cancelled by {request.deleted_by}: {request.reason}"
            makeup.notes = f"{makeup.notes}\n{stamp}" if makeup.notes else stamp
            makeup.status = MakeupStatus.cancelled
            action = "cancelled"
        else:
            audit.record(
                "makeup_delete_for_schedule", makeup_id, request.deleted_by, now,
                reason=request.reason, previous_data=snapshot(makeup),
            )
            makeup_crud.delete_makeup(db, makeup)
            action = "deleted"
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info("Makeup %s %s for schedule %s", makeup_id, action, request.schedule_id)
    return action


# ---------------------------------------------------------
# QUERIES
# ---------------------------------------------------------

def get_makeup(db: Session, makeup_id: int) -> MakeupClass:
    return get_makeup_or_404(db, makeup_id)


def list_makeups(
    db: Session,
    student_id: Optional[int] = None,
    class_id: Optional[int] = None,
    branch_id: Optional[int] = None,
    status: Optional[MakeupStatus] = None,
    type: Optional[MakeupType] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[MakeupClass]:
    return makeup_crud.get_makeups(
        db, student_id=student_id, class_id=class_id, branch_id=branch_id,
        status=status, type=type, skip=skip, limit=limit,
    )


def get_makeup_stats(db: Session, branch_id: Optional[int] = None) -> MakeupStats:
    counts = makeup_crud.count_by_status_and_type(db, branch_id)
    attendance = makeup_crud.count_attendance(db, branch_id)
    checked = sum(attendance.values())
    return MakeupStats(
        total=sum(counts["by_status"].values()),
        by_status=counts["by_status"],
        by_type=counts["by_type"],
        attendance_rate=round(attendance.get("present", 0) * 100 / checked, 1) if checked else 0.0,
    )

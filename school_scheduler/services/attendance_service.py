# school_scheduler/services/attendance_service.py
import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from school_scheduler.crud import attendance_crud, makeup_crud
from school_scheduler.exceptions import (
    ConflictError, InvalidStateTransitionError, LimitExceededError, ValidationError,
)
from school_scheduler.models.attendance_model import (
    Attendance, AttendanceStatus, HELD_ATTENDANCE_STATUSES, PRESENT_ATTENDANCE_STATUSES,
)
from school_scheduler.models.schedule_model import ClassSchedule, ScheduleStatus
from school_scheduler.schemas.attendance_schema import (
    AttendanceRead, AttendanceRecordIn, AttendanceResult, ClassAttendanceSummary, MakeupOutcome,
    StudentAttendanceHistoryItem, StudentAttendanceStats,
)
from school_scheduler.schemas.makeup_schema import MakeupDeleteForSchedule, MakeupRequestCreate
from school_scheduler.schemas.settings_schema import MAKEUP_ELIGIBLE_STATUSES, MakeupPolicy
from school_scheduler.services import makeup_service, settings_service
from school_scheduler.services.schedule_service import get_class_or_404, get_schedule_or_404
from school_scheduler.services.service_helper import utc_now

logger = logging.getLogger(__name__)


def derive_session_status(schedule: ClassSchedule, records: List[Attendance]) -> ScheduleStatus:
    """
    - có ít nhất một bản ghi present / late / sick / leave: buổi học đã diễn ra (completed)
    - không có bản ghi nào: trở lại chưa diễn ra
    - chỉ có absent: giữ nguyên (còn chờ quyết định học bù)
    """
    if any(r.status in HELD_ATTENDANCE_STATUSES for r in records):
        return ScheduleStatus.completed
    if not records:
        return ScheduleStatus.rescheduled if schedule.original_date is not None else ScheduleStatus.scheduled
    return schedule.status


def get_attendance(db: Session, schedule_id: int) -> List[Attendance]:
    get_schedule_or_404(db, schedule_id)
    return attendance_crud.get_attendances_by_schedule(db, schedule_id)


def get_student_attendance_history(
    db: Session,
    student_id: int,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[StudentAttendanceHistoryItem]:
    if start is not None and end is not None and start > end:
        raise ValidationError(
            "start must not be after end", rule="invalid_range", start=start.isoformat(), end=end.isoformat(),
        )
    rows = attendance_crud.get_student_attendance_history(db, student_id, start, end)
    return [
        StudentAttendanceHistoryItem(
            class_id=schedule.class_id,
            schedule_id=schedule.schedule_id,
            session_date=schedule.session_date,
            session_number=schedule.session_number,
            status=attendance.status,
            note=attendance.note,
            checked_at=attendance.checked_at,
            checked_by=attendance.checked_by,
        )
        for attendance, schedule in rows
    ]


def get_class_attendance_summary(db: Session, class_id: int) -> ClassAttendanceSummary:
    """
    Tổng hợp điểm danh của lớp.
    attendance_rate = (present + late) / (present + absent + late) * 100,
    sick / leave không tính vào tỉ lệ.
    """
    get_class_or_404(db, class_id)
    rows = attendance_crud.get_class_attendance_statuses(db, class_id)

    stats: Dict[int, StudentAttendanceStats] = {}
    for _, student_id, status in rows:
        student = stats.setdefault(student_id, StudentAttendanceStats())
        if status == AttendanceStatus.present:
            student.present += 1
        elif status == AttendanceStatus.absent:
            student.absent += 1
        elif status == AttendanceStatus.late:
            student.late += 1

    for student in stats.values():
        counted = student.present + student.absent + student.late
        if counted:
            student.attendance_rate = round((student.present + student.late) / counted * 100, 2)

    return ClassAttendanceSummary(
        class_id=class_id,
        total_sessions=attendance_crud.count_sessions_by_class(db, class_id),
        completed_sessions=len({schedule_id for schedule_id, _, _ in rows}),
        student_stats=stats,
    )


def record_attendance(
    db: Session,
    schedule_id: int,
    records: List[AttendanceRecordIn],
    checked_by: Optional[str] = None,
    now: Optional[datetime] = None,
    policy: Optional[MakeupPolicy] = None,
) -> AttendanceResult:
    """
    Ghi lại toàn bộ điểm danh của một buổi học và tính lại trạng thái buổi.
    Sau khi lưu:
    1. học sinh được sửa từ vắng sang có mặt: gỡ makeup đã tạo cho buổi này
    2. nếu cấu hình bật tự động: tạo makeup cho các trạng thái được phép
    Lỗi giới hạn / trùng lặp của bước 2 được báo trong kết quả, không làm hỏng điểm danh.
    """
    schedule = get_schedule_or_404(db, schedule_id)
    checked_at = now or utc_now()

    if schedule.status == ScheduleStatus.cancelled:
        raise InvalidStateTransitionError(
            "Cannot take attendance for a cancelled session",
            current=schedule.status, target=ScheduleStatus.completed, schedule_id=schedule_id,
        )
    student_ids = [r.student_id for r in records]
    duplicates = sorted({s for s in student_ids if student_ids.count(s) > 1})
    if duplicates:
        raise ValidationError("Each student may appear only once", rule="duplicate_student", student_ids=duplicates)

    previous = {a.student_id: a.status for a in schedule.attendances}
    new_records = [
        Attendance(
            student_id=r.student_id,
            status=r.status,
            note=r.note,
            feedback=r.feedback,
            checked_by=checked_by,
            checked_at=checked_at,
        )
        for r in records
    ]

    try:
        attendance_crud.replace_attendances(db, schedule, new_records)
        schedule.status = derive_session_status(schedule, new_records)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    class_id = schedule.class_id
    outcomes: List[MakeupOutcome] = []

    # 1. Sửa vắng -> có mặt
    for record in records:
        if record.status in PRESENT_ATTENDANCE_STATUSES and previous.get(record.student_id) in MAKEUP_ELIGIBLE_STATUSES:
            action = makeup_service.delete_makeup_for_schedule(
                db,
                MakeupDeleteForSchedule(
                    student_id=record.student_id, class_id=class_id, schedule_id=schedule_id,
                    deleted_by=checked_by or "system",
                ),
                now=checked_at,
            )
            if action:
                outcomes.append(MakeupOutcome(student_id=record.student_id, action="removed", message=action))

    # 2. Tạo makeup tự động
    policy = policy or settings_service.get_makeup_policy(db)
    if policy.auto_create_makeup:
        for record in records:
            if record.status not in policy.allowed_statuses:
                continue
            if makeup_crud.get_active_for_key(db, record.student_id, class_id, schedule_id) is not None:
                continue
            try:
                makeup = makeup_service.create_makeup_request(
                    db,
                    MakeupRequestCreate(
                        student_id=record.student_id,
                        class_id=class_id,
                        schedule_id=schedule_id,
                        reason=record.note or f"Marked {record.status.value}",
                        requested_by=checked_by or "system",
                    ),
                    policy=policy,
                    now=now,  # None: hạn yêu cầu tính theo ngày địa phương
                )
            except (LimitExceededError, ConflictError, ValidationError) as e:
                logger.info("Auto makeup skipped for student %s on session %s: %s", record.student_id, schedule_id, e.message)
                outcomes.append(MakeupOutcome(
                    student_id=record.student_id, action="skipped", rule=e.rule, message=e.message,
                ))
                continue
            outcomes.append(MakeupOutcome(student_id=record.student_id, action="created", makeup_id=makeup.makeup_id))

    db.refresh(schedule)
    saved = attendance_crud.get_attendances_by_schedule(db, schedule_id)
    logger.info("Attendance for session %s: %d records, status %s", schedule_id, len(saved), schedule.status.value)
    return AttendanceResult(
        schedule_id=schedule_id,
        status=schedule.status,
        records=[AttendanceRead.model_validate(a) for a in saved],
        makeups=outcomes,
    )

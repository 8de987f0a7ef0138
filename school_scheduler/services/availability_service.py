# school_scheduler/services/availability_service.py
from datetime import date, time
from typing import List, Optional

from sqlalchemy.orm import Session

from school_scheduler.crud import class_crud, makeup_crud, schedule_crud
from school_scheduler.models.schedule_model import ScheduleStatus
from school_scheduler.schemas.availability_schema import AvailabilityConflict, AvailabilityResult
from school_scheduler.services import holiday_service
from school_scheduler.services.service_helper import (
    date_ranges_overlap, days_intersect, times_overlap, to_naive_time,
)

# Buổi học chưa bị hủy vẫn chiếm phòng / giáo viên
OCCUPYING_SCHEDULE_STATUSES = (
    ScheduleStatus.scheduled,
    ScheduleStatus.rescheduled,
    ScheduleStatus.completed,
)


def check_room_availability(
    db: Session,
    branch_id: int,
    room_id: int,
    days_of_week: List[int],
    start_time: time,
    end_time: time,
    start_date: date,
    end_date: date,
    exclude_class_id: Optional[int] = None,
) -> AvailabilityResult:
    """
    Kiểm tra phòng cho một lớp định kỳ.
    Lớp C bị coi là trùng khi: cùng phòng, chưa kết thúc / chưa hủy, có chung thứ,
    khoảng ngày giao nhau (đóng) và khung giờ giao nhau (nửa mở).
    Trả về TẤT CẢ lớp trùng để UI hiển thị đầy đủ.
    """
    start_time, end_time = to_naive_time(start_time), to_naive_time(end_time)
    conflicts = []
    for other in class_crud.get_active_classes_in_room(db, branch_id, room_id, exclude_class_id):
        if not days_intersect(other.days_of_week, days_of_week):
            continue
        if not date_ranges_overlap(other.start_date, other.end_date, start_date, end_date):
            continue
        if not times_overlap(to_naive_time(other.start_time), to_naive_time(other.end_time), start_time, end_time):
            continue
        conflicts.append(AvailabilityConflict(
            type="class",
            reason="room",
            reference_id=other.class_id,
            name=other.name,
            start_time=other.start_time,
            end_time=other.end_time,
            days_of_week=sorted(set(other.days_of_week) & set(days_of_week)),
        ))
    return AvailabilityResult(available=not conflicts, conflicts=conflicts)


def check_makeup_slot(
    db: Session,
    day: date,
    start_time: time,
    end_time: time,
    teacher_id: int,
    branch_id: int,
    room_id: int,
    exclude_makeup_id: Optional[int] = None,
) -> AvailabilityResult:
    """
    Kiểm tra một slot học bù cụ thể với:
    1. ngày nghỉ của chi nhánh,
    2. buổi học thường trong ngày (cùng phòng hoặc cùng giáo viên),
    3. các makeup đã xếp lịch (cùng phòng hoặc cùng giáo viên).
    """
    start_time, end_time = to_naive_time(start_time), to_naive_time(end_time)
    conflicts = []

    # 1. Ngày nghỉ
    index = holiday_service.build_index(db, branch_id, day, day)
    holiday_name = index.holiday_name(day, branch_id)
    if holiday_name is not None:
        conflicts.append(AvailabilityConflict(type="holiday", reason="holiday", name=holiday_name, date=day))

    # 2. Buổi học thường
    for session in schedule_crud.get_schedules_on_date(db, day, statuses=OCCUPYING_SCHEDULE_STATUSES):
        cls = session.class_info
        if not times_overlap(to_naive_time(cls.start_time), to_naive_time(cls.end_time), start_time, end_time):
            continue
        if cls.branch_id == branch_id and cls.room_id == room_id:
            reason = "room"
        elif cls.teacher_id == teacher_id:
            reason = "teacher"
        else:
            continue
        conflicts.append(AvailabilityConflict(
            type="session",
            reason=reason,
            reference_id=session.schedule_id,
            name=cls.name,
            date=day,
            start_time=cls.start_time,
            end_time=cls.end_time,
        ))

    # 3. Makeup khác
    for other in makeup_crud.get_scheduled_makeups_on_date(
        db, day, teacher_id=teacher_id, branch_id=branch_id, room_id=room_id,
        exclude_makeup_id=exclude_makeup_id,
    ):
        if not times_overlap(
            to_naive_time(other.makeup_start_time), to_naive_time(other.makeup_end_time), start_time, end_time
        ):
            continue
        same_room = other.makeup_branch_id == branch_id and other.makeup_room_id == room_id
        conflicts.append(AvailabilityConflict(
            type="makeup",
            reason="room" if same_room else "teacher",
            reference_id=other.makeup_id,
            name=other.class_name,
            date=day,
            start_time=other.makeup_start_time,
            end_time=other.makeup_end_time,
        ))

    return AvailabilityResult(available=not conflicts, conflicts=conflicts)

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date

from school_scheduler.api import deps
from school_scheduler.schemas import attendance_schema
from school_scheduler.services import attendance_service

router = APIRouter()


@router.get("/schedules/{schedule_id}", response_model=List[attendance_schema.AttendanceRead])
def get_attendance_route(schedule_id: int, db: Session = Depends(deps.get_db)):
    return attendance_service.get_attendance(db, schedule_id)


@router.put("/schedules/{schedule_id}", response_model=attendance_schema.AttendanceResult)
def record_attendance_route(
    schedule_id: int,
    attendance_in: attendance_schema.AttendanceBatchCreate,
    db: Session = Depends(deps.get_db),
):
    """
    Ghi toàn bộ điểm danh của buổi học.
    Kết quả kèm danh sách makeup được tạo / bỏ qua / gỡ bỏ.
    """
    return attendance_service.record_attendance(
        db, schedule_id, attendance_in.records, checked_by=attendance_in.checked_by
    )


@router.get("/students/{student_id}", response_model=List[attendance_schema.StudentAttendanceHistoryItem])
def get_student_attendance_history_route(
    student_id: int,
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    db: Session = Depends(deps.get_db),
):
    return attendance_service.get_student_attendance_history(db, student_id, start, end)


@router.get("/classes/{class_id}/summary", response_model=attendance_schema.ClassAttendanceSummary)
def get_class_attendance_summary_route(class_id: int, db: Session = Depends(deps.get_db)):
    return attendance_service.get_class_attendance_summary(db, class_id)

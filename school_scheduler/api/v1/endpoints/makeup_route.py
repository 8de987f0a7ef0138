from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from school_scheduler.api import deps
from school_scheduler.models.makeup_model import MakeupStatus, MakeupType
from school_scheduler.schemas import makeup_schema
from school_scheduler.services import makeup_service

router = APIRouter()


@router.post("/", response_model=makeup_schema.MakeupClassRead, status_code=status.HTTP_201_CREATED)
def create_makeup_request_route(request: makeup_schema.MakeupRequestCreate, db: Session = Depends(deps.get_db)):
    return makeup_service.create_makeup_request(db, request)


@router.get("/", response_model=List[makeup_schema.MakeupClassRead])
def list_makeups_route(
    db: Session = Depends(deps.get_db),
    student_id: Optional[int] = Query(None),
    class_id: Optional[int] = Query(None),
    branch_id: Optional[int] = Query(None),
    status: Optional[MakeupStatus] = Query(None),
    type: Optional[MakeupType] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    return makeup_service.list_makeups(
        db, student_id=student_id, class_id=class_id, branch_id=branch_id,
        status=status, type=type, skip=skip, limit=limit,
    )


@router.get("/stats", response_model=makeup_schema.MakeupStats)
def get_makeup_stats_route(branch_id: Optional[int] = Query(None), db: Session = Depends(deps.get_db)):
    return makeup_service.get_makeup_stats(db, branch_id)


@router.get("/eligibility", response_model=makeup_schema.MakeupEligibility)
def can_create_makeup_route(
    student_id: int = Query(...),
    class_id: int = Query(...),
    bypass: bool = Query(False),
    db: Session = Depends(deps.get_db),
):
    return makeup_service.can_create_makeup(db, student_id, class_id, bypass=bypass)


@router.post("/delete-for-schedule")
def delete_makeup_for_schedule_route(request: makeup_schema.MakeupDeleteForSchedule, db: Session = Depends(deps.get_db)):
    """Gỡ makeup của một buổi học khi điểm danh gốc được sửa thành có mặt."""
    action = makeup_service.delete_makeup_for_schedule(db, request)
    return {"action": action}


@router.get("/{makeup_id}", response_model=makeup_schema.MakeupClassRead)
def get_makeup_route(makeup_id: int, db: Session = Depends(deps.get_db)):
    return makeup_service.get_makeup(db, makeup_id)


@router.post("/{makeup_id}/schedule", response_model=makeup_schema.MakeupClassRead)
def schedule_makeup_route(makeup_id: int, slot: makeup_schema.MakeupScheduleIn, db: Session = Depends(deps.get_db)):
    return makeup_service.schedule_makeup(db, makeup_id, slot)


@router.put("/{makeup_id}/schedule", response_model=makeup_schema.MakeupClassRead)
def update_makeup_schedule_route(makeup_id: int, slot: makeup_schema.MakeupScheduleIn, db: Session = Depends(deps.get_db)):
    return makeup_service.update_makeup_schedule(db, makeup_id, slot)


@router.post("/{makeup_id}/attendance", response_model=makeup_schema.MakeupClassRead)
def record_makeup_attendance_route(
    makeup_id: int, attendance_in: makeup_schema.MakeupAttendanceIn, db: Session = Depends(deps.get_db)
):
    return makeup_service.record_makeup_attendance(db, makeup_id, attendance_in)


@router.put("/{makeup_id}/attendance", response_model=makeup_schema.MakeupClassRead)
def update_makeup_attendance_route(
    makeup_id: int, attendance_in: makeup_schema.MakeupAttendanceIn, db: Session = Depends(deps.get_db)
):
    return makeup_service.update_makeup_attendance(db, makeup_id, attendance_in)


@router.post("/{makeup_id}/revert", response_model=makeup_schema.MakeupClassRead)
def revert_makeup_attendance_route(
    makeup_id: int, revert_in: makeup_schema.MakeupRevertIn, db: Session = Depends(deps.get_db)
):
    return makeup_service.revert_makeup_attendance(db, makeup_id, revert_in)


@router.post("/{makeup_id}/cancel", response_model=makeup_schema.MakeupClassRead)
def cancel_makeup_route(makeup_id: int, cancel_in: makeup_schema.MakeupCancelIn, db: Session = Depends(deps.get_db)):
    return makeup_service.cancel_makeup(db, makeup_id, cancel_in)

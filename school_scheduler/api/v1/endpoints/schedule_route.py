from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date as dt_date

from school_scheduler.api import deps
from school_scheduler.schemas import schedule_schema
from school_scheduler.services import schedule_service

router = APIRouter()


@router.get("/on-date", response_model=List[schedule_schema.SessionOnDate])
def get_sessions_on_date_route(
    date: dt_date = Query(...),
    branch_id: Optional[int] = Query(None),
    db: Session = Depends(deps.get_db),
):
    """Các buổi học sẽ bị ảnh hưởng nếu ngày này thành ngày nghỉ."""
    return schedule_service.get_sessions_on_date(db, date, branch_id)


@router.get("/{schedule_id}", response_model=schedule_schema.ScheduleRead)
def get_schedule_route(schedule_id: int, db: Session = Depends(deps.get_db)):
    return schedule_service.get_schedule_or_404(db, schedule_id)


@router.post("/{schedule_id}/reschedule", response_model=schedule_schema.ScheduleRead)
def reschedule_session_route(
    schedule_id: int, request: schedule_schema.RescheduleRequest, db: Session = Depends(deps.get_db)
):
    return schedule_service.reschedule_session(db, schedule_id, request.new_date, request.reason, request.actor)


@router.post("/{schedule_id}/cancel", response_model=schedule_schema.ScheduleRead)
def cancel_session_route(
    schedule_id: int, request: schedule_schema.CancelScheduleRequest, db: Session = Depends(deps.get_db)
):
    return schedule_service.cancel_session(db, schedule_id, request.reason, request.actor)

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

from school_scheduler.api import deps
from school_scheduler.schemas import holiday_schema, schedule_schema
from school_scheduler.services import holiday_service, schedule_service

router = APIRouter()


@router.post("/", response_model=holiday_schema.HolidayCreateResult, status_code=status.HTTP_201_CREATED)
def create_holiday_route(holiday_in: holiday_schema.HolidayCreate, db: Session = Depends(deps.get_db)):
    """
    Tạo ngày nghỉ.
    Nếu reschedule_sessions = true, các buổi học rơi vào ngày này được dời sang ngày trống kế tiếp.
    """
    db_holiday = holiday_service.create_holiday(db, holiday_in)
    reschedule = None
    if holiday_in.reschedule_sessions:
        reschedule = schedule_service.reschedule_sessions_for_holiday(db, db_holiday, holiday_in.actor)
    return holiday_schema.HolidayCreateResult(
        holiday=holiday_schema.HolidayRead.model_validate(db_holiday), reschedule=reschedule
    )


@router.get("/", response_model=List[holiday_schema.HolidayRead])
def get_holidays_route(
    db: Session = Depends(deps.get_db),
    year: Optional[int] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    return holiday_service.get_holidays(db, year=year, skip=skip, limit=limit)


@router.delete("/{holiday_id}", response_model=holiday_schema.HolidayRead)
def delete_holiday_route(holiday_id: int, db: Session = Depends(deps.get_db)):
    return holiday_service.delete_holiday(db, holiday_id)


@router.post("/{holiday_id}/reschedule-sessions", response_model=schedule_schema.BatchResult)
def reschedule_sessions_for_holiday_route(
    holiday_id: int, actor: str = Query("system"), db: Session = Depends(deps.get_db)
):
    db_holiday = holiday_service.get_holiday(db, holiday_id)
    return schedule_service.reschedule_sessions_for_holiday(db, db_holiday, actor)

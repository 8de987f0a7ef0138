from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date as dt_date

from school_scheduler.api import deps
from school_scheduler.models.class_model import ClassStatus
from school_scheduler.schemas import class_schema, schedule_schema
from school_scheduler.services import class_service, schedule_service

router = APIRouter()


@router.post("/", response_model=class_schema.ClassRead, status_code=status.HTTP_201_CREATED)
def create_class_route(class_in: class_schema.ClassCreate, db: Session = Depends(deps.get_db)):
    """
    Tạo lớp mới ở trạng thái draft.
    Phòng được kiểm tra trùng lịch trừ khi allow_conflicts = true.
    """
    return class_service.create_class(db, class_in)


@router.get("/", response_model=List[class_schema.ClassRead])
def get_classes_route(
    db: Session = Depends(deps.get_db),
    branch_id: Optional[int] = Query(None),
    status: Optional[ClassStatus] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    return class_service.get_classes(db, branch_id=branch_id, status=status, skip=skip, limit=limit)


@router.post("/regenerate", response_model=schedule_schema.BatchResult)
def regenerate_all_route(db: Session = Depends(deps.get_db)):
    """Sinh lại lịch cho mọi lớp chưa kết thúc (thành công từng phần)."""
    return schedule_service.regenerate_all(db)


@router.post("/status-sweep", response_model=schedule_schema.BatchResult)
def update_class_statuses_route(db: Session = Depends(deps.get_db)):
    return class_service.update_class_statuses(db)


@router.get("/{class_id}", response_model=class_schema.ClassRead)
def get_class_route(class_id: int, db: Session = Depends(deps.get_db)):
    return class_service.get_class(db, class_id)


@router.put("/{class_id}", response_model=class_schema.ClassRead)
def update_class_route(class_id: int, class_in: class_schema.ClassUpdate, db: Session = Depends(deps.get_db)):
    return class_service.update_class(db, class_id, class_in)


@router.get("/{class_id}/editable-fields", response_model=class_schema.EditableFields)
def get_editable_fields_route(class_id: int, db: Session = Depends(deps.get_db)):
    db_class = class_service.get_class(db, class_id)
    return class_service.editable_fields(db_class.status, db_class.enrolled_count)


@router.post("/{class_id}/status", response_model=class_schema.ClassRead)
def transition_class_status_route(
    class_id: int, transition: class_schema.ClassStatusTransition, db: Session = Depends(deps.get_db)
):
    return class_service.transition_class_status(db, class_id, transition.status, actor=transition.actor)


@router.post("/{class_id}/end", response_model=class_schema.EndClassResult)
def end_class_now_route(class_id: int, db: Session = Depends(deps.get_db)):
    """Kết thúc lớp ngay hôm nay, hủy các buổi học phía sau."""
    return class_service.end_class_now(db, class_id)


@router.get("/{class_id}/end-preview", response_model=class_schema.EndClassPreview)
def get_end_class_preview_route(class_id: int, db: Session = Depends(deps.get_db)):
    return class_service.get_end_class_preview(db, class_id)


@router.get("/{class_id}/statistics", response_model=class_schema.ClassStatistics)
def get_class_statistics_route(class_id: int, db: Session = Depends(deps.get_db)):
    return class_service.get_class_statistics(db, class_id)


@router.post("/{class_id}/sessions/generate", response_model=List[schedule_schema.ScheduleRead])
def generate_sessions_route(class_id: int, db: Session = Depends(deps.get_db)):
    return schedule_service.generate_sessions(db, class_id)


@router.get("/{class_id}/sessions", response_model=List[schedule_schema.ScheduleRead])
def get_sessions_route(class_id: int, db: Session = Depends(deps.get_db)):
    return class_service.get_class(db, class_id).schedules


@router.get("/{class_id}/next-available-date", response_model=schedule_schema.NextAvailableDateRead)
def find_next_available_date_route(
    class_id: int,
    from_date: dt_date = Query(...),
    max_date: dt_date = Query(...),
    db: Session = Depends(deps.get_db),
):
    next_date = schedule_service.find_next_available_date(db, class_id, from_date, max_date)
    return schedule_schema.NextAvailableDateRead(
        class_id=class_id, from_date=from_date, max_date=max_date, next_date=next_date
    )


@router.get("/{class_id}/reschedule-history", response_model=List[schedule_schema.RescheduleHistoryItem])
def get_reschedule_history_route(class_id: int, db: Session = Depends(deps.get_db)):
    return schedule_service.get_reschedule_history(db, class_id)

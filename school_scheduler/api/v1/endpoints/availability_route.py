from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from school_scheduler.api import deps
from school_scheduler.schemas import availability_schema
from school_scheduler.services import availability_service

router = APIRouter()


@router.post("/room", response_model=availability_schema.AvailabilityResult)
def check_room_availability_route(query: availability_schema.RoomAvailabilityQuery, db: Session = Depends(deps.get_db)):
    """Trả về tất cả lớp đang chiếm phòng trong khung giờ / khoảng ngày đề xuất."""
    return availability_service.check_room_availability(db, **query.model_dump())


@router.post("/makeup-slot", response_model=availability_schema.AvailabilityResult)
def check_makeup_slot_route(query: availability_schema.MakeupSlotQuery, db: Session = Depends(deps.get_db)):
    return availability_service.check_makeup_slot(
        db, query.date, query.start_time, query.end_time,
        teacher_id=query.teacher_id, branch_id=query.branch_id, room_id=query.room_id,
        exclude_makeup_id=query.exclude_makeup_id,
    )

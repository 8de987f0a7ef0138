from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import date, datetime
from school_scheduler.models.schedule_model import ScheduleStatus


class ScheduleRead(BaseModel):
    """Một buổi học đã được sinh cho lớp."""
    schedule_id: int
    class_id: int
    session_number: int
    session_date: date
    status: ScheduleStatus
    original_date: Optional[date] = None
    rescheduled_at: Optional[datetime] = None
    rescheduled_by: Optional[str] = None
    note: Optional[str] = None

    class Config:
        from_attributes = True


class RescheduleRequest(BaseModel):
    new_date: date
    reason: str = Field(..., min_length=1)
    actor: str


class CancelScheduleRequest(BaseModel):
    reason: str = Field(..., min_length=1)
    actor: str


class NextAvailableDateRead(BaseModel):
    class_id: int
    from_date: date
    max_date: date
    next_date: Optional[date] = None


class ScheduleChangeRead(BaseModel):
    change_id: int
    schedule_id: int
    from_date: date
    to_date: date
    reason: Optional[str] = None
    changed_by: Optional[str] = None
    changed_at: datetime

    class Config:
        from_attributes = True


class RescheduleHistoryItem(ScheduleRead):
    changes: List[ScheduleChangeRead] = []


class SessionOnDate(BaseModel):
    schedule_id: int
    class_id: int
    class_name: str
    session_number: int
    branch_id: int


class BatchDetail(BaseModel):
    class_id: int
    class_name: str
    action: str


class BatchError(BaseModel):
    class_id: Optional[int] = None
    message: str
    rule: Optional[str] = None


class BatchResult(BaseModel):
    """Kết quả của một tác vụ hàng loạt (thành công từng phần)."""
    processed_count: int = 0
    details: List[BatchDetail] = []
    errors: List[BatchError] = []

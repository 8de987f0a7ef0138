from pydantic import BaseModel, field_validator, model_validator
from typing import List, Optional
from datetime import date as dt_date, time
from school_scheduler.schemas.class_schema import normalize_days_of_week


class RoomAvailabilityQuery(BaseModel):
    branch_id: int
    room_id: int
    days_of_week: List[int]
    start_time: time
    end_time: time
    start_date: dt_date
    end_date: dt_date
    exclude_class_id: Optional[int] = None

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, value):
        return normalize_days_of_week(value)

    @model_validator(mode="after")
    def check_ranges(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class MakeupSlotQuery(BaseModel):
    date: dt_date
    start_time: time
    end_time: time
    teacher_id: int
    branch_id: int
    room_id: int
    exclude_makeup_id: Optional[int] = None


class AvailabilityConflict(BaseModel):
    type: str  # class | session | makeup | holiday
    reason: str  # room | teacher | holiday
    reference_id: Optional[int] = None
    name: Optional[str] = None
    date: Optional[dt_date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    days_of_week: Optional[List[int]] = None


class AvailabilityResult(BaseModel):
    available: bool
    conflicts: List[AvailabilityConflict] = []

from pydantic import BaseModel, Field, model_validator
from typing import List, Optional
from datetime import date as dt_date
from school_scheduler.models.holiday_model import HolidayType
from school_scheduler.schemas.schedule_schema import BatchResult


class HolidayBase(BaseModel):
    name: str = Field(..., example="Songkran")
    date: dt_date
    type: HolidayType = HolidayType.national
    branches: List[int] = []

    @model_validator(mode="after")
    def check_branches(self):
        if self.type == HolidayType.branch and not self.branches:
            raise ValueError("branches must be provided for a branch holiday")
        if self.type == HolidayType.national:
            self.branches = []
        return self


class HolidayCreate(HolidayBase):
    # Dời các buổi học rơi vào ngày nghỉ mới
    reschedule_sessions: bool = False
    actor: str = "system"


class HolidayRead(HolidayBase):
    holiday_id: int

    class Config:
        from_attributes = True


class HolidayCreateResult(BaseModel):
    holiday: HolidayRead
    reschedule: Optional[BatchResult] = None

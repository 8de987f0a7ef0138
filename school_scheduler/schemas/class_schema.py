from pydantic import BaseModel, Field, field_validator, model_validator
from typing import List, Optional
from datetime import date, datetime, time
from school_scheduler.models.class_model import ClassStatus


def normalize_days_of_week(value: Optional[List[int]]) -> Optional[List[int]]:
    """Loại trùng, sắp xếp và kiểm tra thứ trong tuần (0 = Chủ nhật ... 6 = Thứ bảy)."""
    if value is None:
        return None
    days = sorted(set(value))
    invalid = [d for d in days if d < 0 or d > 6]
    if invalid:
        raise ValueError(f"days_of_week must be within 0..6, got {invalid}")
    return days


class ClassBase(BaseModel):
    name: str = Field(..., example="Robotics A1")
    code: str = Field(..., example="RB-A1-2024")
    subject_id: int = Field(..., example=1)
    teacher_id: int = Field(..., example=1)
    branch_id: int = Field(..., example=1)
    room_id: int = Field(..., example=1)
    start_date: date
    total_sessions: int = Field(..., gt=0, example=10)
    days_of_week: List[int] = Field(default_factory=list, example=[1, 3])
    start_time: time
    end_time: time
    max_students: int = Field(..., gt=0, example=10)
    min_students: int = Field(1, ge=0, example=3)

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, value):
        return normalize_days_of_week(value)

    @model_validator(mode="after")
    def check_time_window(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        if self.min_students > self.max_students:
            raise ValueError("min_students must not exceed max_students")
        return self


class ClassCreate(ClassBase):
    # Cho phép bỏ qua cảnh báo trùng phòng (thao tác của quản lý)
    allow_conflicts: bool = False


class ClassUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    subject_id: Optional[int] = None
    teacher_id: Optional[int] = None
    branch_id: Optional[int] = None
    room_id: Optional[int] = None
    start_date: Optional[date] = None
    total_sessions: Optional[int] = Field(None, gt=0)
    days_of_week: Optional[List[int]] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    max_students: Optional[int] = Field(None, gt=0)
    min_students: Optional[int] = Field(None, ge=0)
    enrolled_count: Optional[int] = Field(None, ge=0)
    allow_conflicts: bool = False

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, value):
        return normalize_days_of_week(value)


class ClassRead(BaseModel):
    class_id: int
    name: str
    code: str
    subject_id: int
    teacher_id: int
    branch_id: int
    room_id: int
    start_date: date
    end_date: date
    total_sessions: int
    days_of_week: List[int]
    start_time: time
    end_time: time
    max_students: int
    min_students: int
    enrolled_count: int
    status: ClassStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EditableFields(BaseModel):
    """Nhóm trường được phép sửa theo trạng thái lớp."""
    basic_info: bool = False
    schedule: bool = False
    resources: bool = False
    pricing: bool = False
    capacity: bool = False
    status: bool = False


class ClassStatusTransition(BaseModel):
    status: ClassStatus
    actor: Optional[str] = None


class EndClassResult(BaseModel):
    class_id: int
    new_end_date: date
    cancelled_sessions: int


class EndClassPreview(BaseModel):
    last_session_date: Optional[date]
    completed_sessions: int
    future_sessions: int
    total_sessions: int


class ClassStatistics(BaseModel):
    total_sessions: int
    completed_sessions: int
    upcoming_sessions: int
    cancelled_sessions: int
    attendance_rate: float

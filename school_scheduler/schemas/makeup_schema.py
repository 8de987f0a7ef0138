from pydantic import BaseModel, Field, model_validator
from typing import Dict, Optional
from datetime import date as dt_date, datetime, time
from school_scheduler.models.makeup_model import MakeupAttendanceStatus, MakeupStatus, MakeupType


class MakeupRequestCreate(BaseModel):
    student_id: int
    class_id: int
    schedule_id: int
    reason: str = Field(..., min_length=1)
    requested_by: str
    type: MakeupType = MakeupType.scheduled
    student_name: Optional[str] = None
    notes: Optional[str] = None
    # Quản lý được phép vượt qua cấu hình (tắt tự động, giới hạn, hạn yêu cầu)
    bypass_policy: bool = False


class MakeupScheduleIn(BaseModel):
    date: dt_date
    start_time: time
    end_time: time
    teacher_id: int
    branch_id: int
    room_id: int
    confirmed_by: str
    allow_conflicts: bool = False
    bypass_policy: bool = False

    @model_validator(mode="after")
    def check_time_window(self):
        if self.start_time >= self.end_time:
            raise ValueError("start_time must be before end_time")
        return self


class MakeupAttendanceIn(BaseModel):
    status: MakeupAttendanceStatus
    checked_by: str
    note: Optional[str] = None


class MakeupRevertIn(BaseModel):
    reverted_by: str
    reason: str


class MakeupCancelIn(BaseModel):
    cancelled_by: str
    reason: str = Field(..., min_length=1)


class MakeupDeleteForSchedule(BaseModel):
    student_id: int
    class_id: int
    schedule_id: int
    deleted_by: str
    reason: str = "Attendance updated to present"


class MakeupSchedule(BaseModel):
    date: dt_date
    start_time: time
    end_time: time
    teacher_id: int
    branch_id: int
    room_id: int
    confirmed_at: Optional[datetime] = None
    confirmed_by: Optional[str] = None


class MakeupAttendance(BaseModel):
    status: MakeupAttendanceStatus
    checked_by: Optional[str] = None
    checked_at: Optional[datetime] = None
    note: Optional[str] = None


class MakeupClassRead(BaseModel):
    """
    Dạng domain của makeup: các cột lịch / điểm danh phẳng trong DB
    được gom lại thành `makeup_schedule` và `attendance`.
    """
    makeup_id: int
    type: MakeupType
    student_id: int
    original_class_id: int
    original_schedule_id: Optional[int] = None
    original_session_number: Optional[int] = None
    original_session_date: Optional[dt_date] = None
    branch_id: int
    class_name: Optional[str] = None
    student_name: Optional[str] = None
    request_date: Optional[datetime] = None
    requested_by: Optional[str] = None
    reason: Optional[str] = None
    status: MakeupStatus
    notes: Optional[str] = None
    makeup_schedule: Optional[MakeupSchedule] = None
    attendance: Optional[MakeupAttendance] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @model_validator(mode="before")
    @classmethod
    def nest_flat_columns(cls, data):
        if isinstance(data, dict):
            return data

        row = {
            name: getattr(data, name, None)
            for name in cls.model_fields
            if name not in ("makeup_schedule", "attendance")
        }
        if getattr(data, "makeup_date", None) is not None:
            row["makeup_schedule"] = {
                "date": data.makeup_date,
                "start_time": data.makeup_start_time,
                "end_time": data.makeup_end_time,
                "teacher_id": data.makeup_teacher_id,
                "branch_id": data.makeup_branch_id,
                "room_id": data.makeup_room_id,
                "confirmed_at": data.makeup_confirmed_at,
                "confirmed_by": data.makeup_confirmed_by,
            }
        if getattr(data, "attendance_status", None) is not None:
            row["attendance"] = {
                "status": data.attendance_status,
                "checked_by": data.attendance_checked_by,
                "checked_at": data.attendance_checked_at,
                "note": data.attendance_note,
            }
        return row


class MakeupStats(BaseModel):
    total: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    attendance_rate: float


class MakeupEligibility(BaseModel):
    allowed: bool
    current_count: int
    limit: int
    message: Optional[str] = None

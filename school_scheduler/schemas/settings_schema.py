from pydantic import BaseModel, Field, field_validator
from typing import Optional, Set
from school_scheduler.models.attendance_model import AttendanceStatus

# Chỉ các trạng thái vắng mới được xét học bù
MAKEUP_ELIGIBLE_STATUSES = {AttendanceStatus.absent, AttendanceStatus.sick, AttendanceStatus.leave}


def check_allowed_statuses(value):
    invalid = set(value or ()) - MAKEUP_ELIGIBLE_STATUSES
    if invalid:
        raise ValueError(f"allowed_statuses may only contain absent/sick/leave, got {sorted(s.value for s in invalid)}")
    return value


class MakeupPolicy(BaseModel):
    """
    Cấu hình học bù, được kiểm tra một lần khi đọc từ bảng settings.
    """
    auto_create_makeup: bool = True
    makeup_limit_per_course: int = Field(4, ge=0)  # 0 = không giới hạn
    allowed_statuses: Set[AttendanceStatus] = Field(default_factory=lambda: set(MAKEUP_ELIGIBLE_STATUSES))
    request_deadline_days: int = Field(7, ge=0)  # 0 = không hạn
    validity_days: int = Field(30, ge=0)  # 0 = không hết hạn

    @field_validator("allowed_statuses")
    @classmethod
    def only_absence_statuses(cls, value):
        return check_allowed_statuses(value)


class MakeupPolicyUpdate(BaseModel):
    auto_create_makeup: Optional[bool] = None
    makeup_limit_per_course: Optional[int] = Field(None, ge=0)
    allowed_statuses: Optional[Set[AttendanceStatus]] = None
    request_deadline_days: Optional[int] = Field(None, ge=0)
    validity_days: Optional[int] = Field(None, ge=0)
    updated_by: Optional[str] = None

    @field_validator("allowed_statuses")
    @classmethod
    def only_absence_statuses(cls, value):
        return check_allowed_statuses(value)

# school_scheduler/schemas/attendance_schema.py
from pydantic import BaseModel
from datetime import date, datetime
from typing import Dict, List, Optional
from school_scheduler.models.attendance_model import AttendanceStatus
from school_scheduler.models.schedule_model import ScheduleStatus


class AttendanceRecordIn(BaseModel):
    """Điểm danh của một học sinh trong buổi học"""
    student_id: int
    status: AttendanceStatus
    note: Optional[str] = None
    feedback: Optional[str] = None


class AttendanceBatchCreate(BaseModel):
    """Schema để ghi toàn bộ điểm danh cho 1 buổi học"""
    records: List[AttendanceRecordIn]
    checked_by: Optional[str] = None


class AttendanceRead(BaseModel):
    attendance_id: int
    schedule_id: int
    student_id: int
    status: AttendanceStatus
    note: Optional[str] = None
    feedback: Optional[str] = None
    checked_by: Optional[str] = None
    checked_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MakeupOutcome(BaseModel):
    """Kết quả xử lý makeup tự động cho một học sinh."""
    student_id: int
    action: str  # created | skipped | removed
    makeup_id: Optional[int] = None
    rule: Optional[str] = None
    message: Optional[str] = None


class AttendanceResult(BaseModel):
    schedule_id: int
    status: ScheduleStatus
    records: List[AttendanceRead]
    makeups: List[MakeupOutcome] = []


class StudentAttendanceHistoryItem(BaseModel):
    class_id: int
    schedule_id: int
    session_date: date
    session_number: int
    status: AttendanceStatus
    note: Optional[str] = None
    checked_at: Optional[datetime] = None
    checked_by: Optional[str] = None


class StudentAttendanceStats(BaseModel):
    present: int = 0
    absent: int = 0
    late: int = 0
    attendance_rate: float = 0.0


class ClassAttendanceSummary(BaseModel):
    class_id: int
    total_sessions: int
    completed_sessions: int  # số buổi đã có ít nhất một bản ghi điểm danh
    student_stats: Dict[int, StudentAttendanceStats]

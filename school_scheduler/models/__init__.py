from .base_model import Base
from .class_model import Class
from .schedule_model import ClassSchedule, ScheduleChange
from .attendance_model import Attendance
from .holiday_model import Holiday
from .makeup_model import MakeupClass
from .setting_model import Setting
from .audit_log_model import AuditLog
from .notification_model import Notification

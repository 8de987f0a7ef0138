# school_scheduler/services/audit_service.py
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from school_scheduler.crud import audit_log_crud
from school_scheduler.models.audit_log_model import AuditLog


class AuditLogger:
    """
    Ghi lại các thao tác sửa / xóa điểm danh học bù.
    Bản ghi đi cùng giao dịch của thao tác gốc (không commit riêng).
    """

    def __init__(self, db: Session):
        self.db = db

    def record(
        self,
        type: str,
        document_id: int,
        performed_by: Optional[str],
        performed_at: datetime,
        reason: Optional[str] = None,
        previous_data: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        return audit_log_crud.create_audit_log(
            self.db, type, document_id, performed_by, performed_at, reason, previous_data
        )

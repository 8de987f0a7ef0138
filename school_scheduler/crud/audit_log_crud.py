from sqlalchemy.orm import Session
from typing import Any, Dict, List, Optional
from datetime import datetime

from school_scheduler.models.audit_log_model import AuditLog


def create_audit_log(
    db: Session,
    type: str,
    document_id: int,
    performed_by: Optional[str],
    performed_at: datetime,
    reason: Optional[str] = None,
    previous_data: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Không commit: bản ghi audit đi cùng giao dịch của thao tác gốc."""
    db_log = AuditLog(
        type=type,
        document_id=document_id,
        performed_by=performed_by,
        performed_at=performed_at,
        reason=reason,
        previous_data=previous_data,
    )
    db.add(db_log)
    return db_log


def get_audit_logs(db: Session, document_id: Optional[int] = None, type: Optional[str] = None) -> List[AuditLog]:
    query = db.query(AuditLog)
    if document_id is not None:
        query = query.filter(AuditLog.document_id == document_id)
    if type is not None:
        query = query.filter(AuditLog.type == type)
    return query.order_by(AuditLog.audit_id).all()

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text, func
from school_scheduler.models.base_model import Base


class AuditLog(Base):
    __tablename__ = "audit_logs"

    audit_id = Column(Integer, primary_key=True, index=True)
    type = Column(String(50), nullable=False, index=True)
    document_id = Column(Integer, nullable=False)
    performed_by = Column(String(100), nullable=True)
    performed_at = Column(DateTime, default=func.now(), nullable=False)
    reason = Column(Text, nullable=True)
    previous_data = Column(JSON, nullable=True)

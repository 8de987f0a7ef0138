from sqlalchemy import Column, DateTime, JSON, String, func
from school_scheduler.models.base_model import Base


class Setting(Base):
    """Bảng cấu hình dạng key/value (JSON)."""
    __tablename__ = "settings"

    key = Column(String(50), primary_key=True)
    value = Column(JSON, nullable=False, default=dict)
    updated_at = Column(DateTime, default=func.now(), onupdate=func.now())
    updated_by = Column(String(100), nullable=True)

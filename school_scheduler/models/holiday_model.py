from sqlalchemy import Column, Date, Enum, Integer, JSON, String
from school_scheduler.models.base_model import Base
import enum


class HolidayType(str, enum.Enum):
    national = "national"
    branch = "branch"


class Holiday(Base):
    __tablename__ = "holidays"

    holiday_id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    date = Column(Date, nullable=False, index=True)
    type = Column(Enum(HolidayType), nullable=False, default=HolidayType.national)
    # Danh sách branch_id, chỉ có ý nghĩa với ngày nghỉ của chi nhánh
    branches = Column(JSON, nullable=False, default=list)

    def __repr__(self):
        return f"<Holiday(date={self.date}, type={self.type})>"

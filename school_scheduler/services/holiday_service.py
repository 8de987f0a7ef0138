# school_scheduler/services/holiday_service.py
import logging
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from school_scheduler.crud import holiday_crud
from school_scheduler.exceptions import DependencyError, NotFoundError
from school_scheduler.models.holiday_model import Holiday, HolidayType
from school_scheduler.schemas.holiday_schema import HolidayCreate, HolidayRead
from school_scheduler.services.service_helper import to_date_key

logger = logging.getLogger(__name__)


class HolidayIndex:
    """
    Tra cứu ngày nghỉ theo chi nhánh.
    Ngày nghỉ quốc gia áp dụng cho mọi chi nhánh, ngày nghỉ chi nhánh chỉ áp dụng
    cho các chi nhánh trong `branches`. Khóa là ngày theo lịch (không múi giờ).
    """

    def __init__(self, holidays: Iterable[Holiday]):
        self._national: Dict[date, str] = {}
        self._by_branch: Dict[int, Dict[date, str]] = {}
        for holiday in holidays:
            key = to_date_key(holiday.date)
            if holiday.type == HolidayType.national:
                self._national.setdefault(key, holiday.name)
            else:
                for branch_id in holiday.branches or []:
                    self._by_branch.setdefault(int(branch_id), {}).setdefault(key, holiday.name)

    def holiday_name(self, day, branch_id: int) -> Optional[str]:
        key = to_date_key(day)
        if key in self._national:
            return self._national[key]
        return self._by_branch.get(branch_id, {}).get(key)

    def is_holiday(self, day, branch_id: int) -> bool:
        return self.holiday_name(day, branch_id) is not None

    def holidays_in_range(self, branch_id: int, start, end) -> Set[date]:
        start, end = to_date_key(start), to_date_key(end)
        candidates = set(self._national) | set(self._by_branch.get(branch_id, {}))
        return {d for d in candidates if start <= d <= end}


class HolidayStore:
    """Nguồn dữ liệu ngày nghỉ mặc định (bảng holidays)."""

    def __init__(self, db: Session):
        self.db = db

    def for_branch_and_range(self, branch_id: int, start: date, end: date) -> List[Holiday]:
        try:
            holidays = holiday_crud.get_holidays_in_range(self.db, start, end)
        except SQLAlchemyError as e:
            logger.error("Holiday lookup failed for branch %s: %s", branch_id, e)
            raise DependencyError(
                "Holiday lookup is unavailable", branch_id=branch_id,
                start=start.isoformat(), end=end.isoformat(),
            ) from e
        return [
            h for h in holidays
            if h.type == HolidayType.national or branch_id in (h.branches or [])
        ]


def build_index(db: Session, branch_id: int, start: date, end: date, store: Optional[HolidayStore] = None) -> HolidayIndex:
    store = store or HolidayStore(db)
    return HolidayIndex(store.for_branch_and_range(branch_id, start, end))


def holiday_set(db: Session, branch_id: int, start: date, days: int) -> Set[date]:
    """Tập ngày nghỉ của chi nhánh trong `days` ngày kể từ `start`."""
    end = start + timedelta(days=days)
    return build_index(db, branch_id, start, end).holidays_in_range(branch_id, start, end)


# ---------------------------------------------------------
# HOLIDAY CRUD
# ---------------------------------------------------------

def create_holiday(db: Session, holiday_in: HolidayCreate) -> Holiday:
    db_holiday = holiday_crud.create_holiday(db, holiday_in)
    logger.info("Created %s holiday %s on %s", db_holiday.type.value, db_holiday.name, db_holiday.date)
    return db_holiday


def get_holiday(db: Session, holiday_id: int) -> Holiday:
    db_holiday = holiday_crud.get_holiday(db, holiday_id)
    if db_holiday is None:
        raise NotFoundError("Holiday not found", holiday_id=holiday_id)
    return db_holiday


def get_holidays(db: Session, year: Optional[int] = None, skip: int = 0, limit: int = 100) -> List[Holiday]:
    return holiday_crud.get_holidays(db, year=year, skip=skip, limit=limit)


def delete_holiday(db: Session, holiday_id: int) -> HolidayRead:
    db_holiday = get_holiday(db, holiday_id)
    deleted = HolidayRead.model_validate(db_holiday)
    holiday_crud.delete_holiday(db, db_holiday)
    logger.info("Deleted holiday %s on %s", deleted.name, deleted.date)
    return deleted

from sqlalchemy.orm import Session
from sqlalchemy import extract
from typing import List, Optional
from datetime import date

from school_scheduler.models.holiday_model import Holiday
from school_scheduler.schemas.holiday_schema import HolidayBase


def get_holiday(db: Session, holiday_id: int) -> Optional[Holiday]:
    return db.query(Holiday).filter(Holiday.holiday_id == holiday_id).first()


def get_holidays_in_range(db: Session, start: date, end: date) -> List[Holiday]:
    """
    Ngày nghỉ trong khoảng [start, end].
    Lọc theo chi nhánh được làm ở HolidayIndex vì `branches` là cột JSON.
    """
    return (
        db.query(Holiday)
        .filter(Holiday.date >= start, Holiday.date <= end)
        .order_by(Holiday.date)
        .all()
    )


def get_holidays(db: Session, year: Optional[int] = None, skip: int = 0, limit: int = 100) -> List[Holiday]:
    query = db.query(Holiday)
    if year is not None:
        query = query.filter(extract("year", Holiday.date) == year)
    return query.order_by(Holiday.date).offset(skip).limit(limit).all()


def create_holiday(db: Session, holiday_in: HolidayBase) -> Holiday:
    db_holiday = Holiday(
        name=holiday_in.name,
        date=holiday_in.date,
        type=holiday_in.type,
        branches=list(holiday_in.branches),
    )
    db.add(db_holiday)
    db.commit()
    db.refresh(db_holiday)
    return db_holiday


def delete_holiday(db: Session, db_holiday: Holiday) -> None:
    db.delete(db_holiday)
    db.commit()

from datetime import date, datetime

import pytest

from school_scheduler.exceptions import DependencyError
from school_scheduler.models.holiday_model import Holiday, HolidayType
from school_scheduler.schemas.holiday_schema import HolidayCreate
from school_scheduler.services import holiday_service
from school_scheduler.services.holiday_service import HolidayIndex, HolidayStore
from school_scheduler.services.service_helper import to_date_key


def build_index():
    return HolidayIndex([
        Holiday(name="New Year", date=date(2024, 1, 1), type=HolidayType.national, branches=[]),
        Holiday(name="Branch day", date=date(2024, 1, 8), type=HolidayType.branch, branches=[2, 3]),
    ])


def test_national_holiday_applies_to_every_branch():
    index = build_index()
    assert index.is_holiday(date(2024, 1, 1), 1)
    assert index.is_holiday(date(2024, 1, 1), 99)
    assert index.holiday_name(date(2024, 1, 1), 5) == "New Year"


def test_branch_holiday_only_applies_to_listed_branches():
    index = build_index()
    assert index.is_holiday(date(2024, 1, 8), 2)
    assert not index.is_holiday(date(2024, 1, 8), 1)
    assert not index.is_holiday(date(2024, 1, 9), 2)


def test_lookup_is_idempotent():
    index = build_index()
    first = index.is_holiday(date(2024, 1, 8), 3)
    assert index.is_holiday(date(2024, 1, 8), 3) == first


def test_datetime_and_string_keys_use_the_calendar_day():
    index = build_index()
    assert index.is_holiday(datetime(2024, 1, 1, 23, 30), 1)
    assert index.is_holiday("2024-01-01T23:30:00+07:00", 1)
    assert index.is_holiday("08/01/2024", 2)


def test_holidays_in_range():
    index = build_index()
    assert index.holidays_in_range(2, date(2024, 1, 1), date(2024, 1, 31)) == {date(2024, 1, 1), date(2024, 1, 8)}
    assert index.holidays_in_range(1, date(2024, 1, 2), date(2024, 1, 31)) == set()


def test_to_date_key_rejects_garbage():
    with pytest.raises(ValueError):
        to_date_key("not a date")
    with pytest.raises(TypeError):
        to_date_key(12345)


def test_store_filters_by_branch(db):
    holiday_service.create_holiday(db, HolidayCreate(name="Tet", date=date(2024, 2, 10)))
    holiday_service.create_holiday(
        db, HolidayCreate(name="Branch 2 day", date=date(2024, 2, 12), type=HolidayType.branch, branches=[2])
    )

    holidays = HolidayStore(db).for_branch_and_range(1, date(2024, 2, 1), date(2024, 2, 28))
    assert [h.name for h in holidays] == ["Tet"]

    index = holiday_service.build_index(db, 2, date(2024, 2, 1), date(2024, 2, 28))
    assert index.holidays_in_range(2, date(2024, 2, 1), date(2024, 2, 28)) == {date(2024, 2, 10), date(2024, 2, 12)}


def test_store_failure_is_a_dependency_error(db, monkeypatch):
    from sqlalchemy.exc import OperationalError
    from school_scheduler.crud import holiday_crud

    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is down"))

    monkeypatch.setattr(holiday_crud, "get_holidays_in_range", broken)
    with pytest.raises(DependencyError) as exc:
        HolidayStore(db).for_branch_and_range(1, date(2024, 1, 1), date(2024, 1, 31))
    assert exc.value.status_code == 503
    assert exc.value.detail["branch_id"] == 1


def test_branch_holiday_requires_branches():
    with pytest.raises(ValueError):
        HolidayCreate(name="Broken", date=date(2024, 3, 1), type=HolidayType.branch, branches=[])

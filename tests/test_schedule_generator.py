from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError

from school_scheduler.exceptions import ConflictError, InvalidStateTransitionError, ValidationError
from school_scheduler.models.holiday_model import HolidayType
from school_scheduler.models.makeup_model import MakeupClass
from school_scheduler.models.schedule_model import ScheduleStatus
from school_scheduler.schemas.holiday_schema import HolidayCreate
from school_scheduler.services import holiday_service, schedule_service
from school_scheduler.services.schedule_service import generate
from school_scheduler.services.service_helper import weekday_index


# ---------------------------------------------------------
# generate()
# ---------------------------------------------------------

def test_generate_skips_holidays():
    dates = generate(date(2024, 1, 1), [1, 3], 3, {date(2024, 1, 8)})
    assert dates == [date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 10)]


@pytest.mark.parametrize("start, days, total, holidays", [
    (date(2024, 1, 1), [1, 3], 10, set()),
    (date(2024, 2, 29), [0, 6], 7, {date(2024, 3, 2), date(2024, 3, 3)}),
    (date(2024, 12, 30), [5], 4, {date(2025, 1, 3)}),
    (date(2024, 4, 10), [0, 1, 2, 3, 4, 5, 6], 15, {date(2024, 4, 12), date(2024, 4, 13)}),
])
def test_generate_properties(start, days, total, holidays):
    dates = generate(start, days, total, holidays)
    assert len(dates) == total
    assert all(a < b for a, b in zip(dates, dates[1:]))
    assert all(weekday_index(d) in days for d in dates)
    assert not set(dates) & holidays
    assert dates[0] >= start


def test_generate_accepts_string_holiday_keys():
    dates = generate(date(2024, 1, 1), [1], 2, {"2024-01-08"})
    assert dates == [date(2024, 1, 1), date(2024, 1, 15)]


@pytest.mark.parametrize("days, total, rule", [
    ([], 3, "empty_day_pattern"),
    ([7], 3, "invalid_weekday"),
    ([1], 0, "invalid_total_sessions"),
])
def test_generate_rejects_bad_input(days, total, rule):
    with pytest.raises(ValidationError) as exc:
        generate(date(2024, 1, 1), days, total, set())
    assert exc.value.rule == rule


def test_generate_stops_at_the_scan_cap():
    with pytest.raises(ValidationError) as exc:
        generate(date(2024, 1, 1), [1], 5, set(), max_scan_days=14)
    assert exc.value.rule == "generation_horizon"
    assert exc.value.detail["generated"] == 2


# ---------------------------------------------------------
# generate_sessions / regenerate_all
# ---------------------------------------------------------

def test_publish_generates_numbered_sessions_around_holidays(db, make_class):
    holiday_service.create_holiday(db, HolidayCreate(name="Closed", date=date(2024, 1, 8)))
    holiday_service.create_holiday(
        db, HolidayCreate(name="Other branch", date=date(2024, 1, 10), type=HolidayType.branch, branches=[2])
    )
    db_class = make_class(total_sessions=3)

    sessions = schedule_service.generate_sessions(db, db_class.class_id)
    assert [s.session_number for s in sessions] == [1, 2, 3]
    assert [s.session_date for s in sessions] == [date(2024, 1, 1), date(2024, 1, 3), date(2024, 1, 10)]
    assert all(s.status == ScheduleStatus.scheduled for s in sessions)
    db.refresh(db_class)
    assert db_class.end_date == date(2024, 1, 10)


def test_regenerate_all_applies_new_holidays(db, make_class):
    first = make_class(total_sessions=3)
    second = make_class(total_sessions=2, days_of_week=[2])
    holiday_service.create_holiday(db, HolidayCreate(name="Closed", date=date(2024, 1, 3)))

    result = schedule_service.regenerate_all(db)

    assert result.processed_count == 2
    assert result.errors == []
    dates = [s.session_date for s in schedule_service.generate_sessions(db, first.class_id)]
    assert dates == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 10)]
    db.refresh(second)
    assert second.end_date == date(2024, 1, 9)


def test_regenerate_all_collects_failures_and_continues(db, make_class):
    healthy = make_class(total_sessions=2)
    broken = make_class(total_sessions=2)
    broken.days_of_week = [9]
    db.commit()

    result = schedule_service.regenerate_all(db)

    assert result.processed_count == 1
    assert result.details[0].class_id == healthy.class_id
    assert len(result.errors) == 1
    assert result.errors[0].class_id == broken.class_id
    assert result.errors[0].rule == "invalid_weekday"
    # lớp lỗi giữ nguyên bộ buổi học cũ
    assert len(schedule_service.get_class_or_404(db, broken.class_id).schedules) == 2


def test_regeneration_keeps_makeups_linked_by_session_number(db, make_class):
    db_class = make_class(total_sessions=3)
    session_two = db_class.schedules[1]
    makeup = MakeupClass(
        student_id=7,
        original_class_id=db_class.class_id,
        original_schedule_id=session_two.schedule_id,
        original_session_number=2,
        original_session_date=session_two.session_date,
        branch_id=1,
    )
    db.add(makeup)
    db.commit()

    holiday_service.create_holiday(db, HolidayCreate(name="Closed", date=date(2024, 1, 1)))
    sessions = schedule_service.generate_sessions(db, db_class.class_id)

    db.refresh(makeup)
    new_two = next(s for s in sessions if s.session_number == 2)
    assert makeup.original_schedule_id == new_two.schedule_id
    assert makeup.original_session_date == date(2024, 1, 8)


# ---------------------------------------------------------
# find_next_available_date / reschedule
# ---------------------------------------------------------

def test_find_next_available_date(db, make_class):
    holiday_service.create_holiday(db, HolidayCreate(name="Closed", date=date(2024, 1, 8)))
    db_class = make_class(total_sessions=3)  # 1/1, 3/1, 10/1

    found = schedule_service.find_next_available_date(db, db_class.class_id, date(2024, 1, 3), date(2024, 2, 1))
    assert found == date(2024, 1, 15)
    assert schedule_service.find_next_available_date(db, db_class.class_id, date(2024, 1, 3), date(2024, 1, 12)) is None


def test_reschedule_keeps_first_original_date_and_logs_every_move(db, make_class):
    db_class = make_class(total_sessions=3)
    session = db_class.schedules[0]

    schedule_service.reschedule_session(db, session.schedule_id, date(2024, 1, 2), "Teacher sick", "admin")
    moved = schedule_service.reschedule_session(db, session.schedule_id, date(2024, 1, 4), "Room busy", "admin")

    assert moved.status == ScheduleStatus.rescheduled
    assert moved.session_date == date(2024, 1, 4)
    assert moved.original_date == date(2024, 1, 1)
    assert moved.rescheduled_by == "admin"
    assert [(c.from_date, c.to_date) for c in moved.changes] == [
        (date(2024, 1, 1), date(2024, 1, 2)),
        (date(2024, 1, 2), date(2024, 1, 4)),
    ]

    history = schedule_service.get_reschedule_history(db, db_class.class_id)
    assert [s.schedule_id for s in history] == [session.schedule_id]


def test_reschedule_rejects_occupied_dates_and_holidays(db, make_class):
    db_class = make_class(total_sessions=3)
    first, second = db_class.schedules[0], db_class.schedules[1]
    holiday_service.create_holiday(db, HolidayCreate(name="Closed", date=date(2024, 1, 2)))

    with pytest.raises(ConflictError) as exc:
        schedule_service.reschedule_session(db, first.schedule_id, second.session_date, "swap", "admin")
    assert exc.value.rule == "session_exists"

    with pytest.raises(ConflictError) as exc:
        schedule_service.reschedule_session(db, first.schedule_id, date(2024, 1, 2), "holiday", "admin")
    assert exc.value.rule == "holiday"


def test_cancelled_session_cannot_be_rescheduled(db, make_class):
    db_class = make_class(total_sessions=3)
    session = db_class.schedules[2]
    schedule_service.cancel_session(db, session.schedule_id, "Teacher away", "admin")

    with pytest.raises(InvalidStateTransitionError) as exc:
        schedule_service.reschedule_session(db, session.schedule_id, date(2024, 1, 20), "later", "admin")
    assert exc.value.detail["current"] == "cancelled"

    with pytest.raises(InvalidStateTransitionError):
        schedule_service.cancel_session(db, session.schedule_id, "again", "admin")


def test_holiday_bulk_reschedule_moves_sessions_to_next_free_day(db, make_class):
    db_class = make_class(total_sessions=3)  # 1/1, 3/1, 8/1
    other_branch = make_class(total_sessions=3, branch_id=2)

    preview = schedule_service.get_sessions_on_date(db, date(2024, 1, 8), branch_id=1)
    assert [p.class_id for p in preview] == [db_class.class_id]

    holiday = holiday_service.create_holiday(
        db, HolidayCreate(name="Branch 1 closed", date=date(2024, 1, 8), type=HolidayType.branch, branches=[1])
    )
    result = schedule_service.reschedule_sessions_for_holiday(db, holiday, "admin")

    assert result.processed_count == 1
    assert result.errors == []
    moved = schedule_service.get_class_or_404(db, db_class.class_id).schedules[2]
    assert moved.session_date == date(2024, 1, 10)
    assert moved.original_date == date(2024, 1, 8)
    untouched = schedule_service.get_class_or_404(db, other_branch.class_id).schedules[2]
    assert untouched.session_date == date(2024, 1, 8)


def test_generate_sessions_for_missing_class(db):
    from school_scheduler.exceptions import NotFoundError
    with pytest.raises(NotFoundError):
        schedule_service.generate_sessions(db, 12345)


def test_reschedule_window_exhausted_is_reported(db, make_class, monkeypatch):
    db_class = make_class(total_sessions=2, days_of_week=[1])  # 1/1, 8/1
    monkeypatch.setattr(schedule_service, "HOLIDAY_RESCHEDULE_WINDOW_DAYS", 3)
    holiday = holiday_service.create_holiday(db, HolidayCreate(name="Closed", date=date(2024, 1, 8)))

    result = schedule_service.reschedule_sessions_for_holiday(db, holiday, "admin")

    assert result.processed_count == 0
    assert result.errors[0].rule == "no_available_date"
    assert result.errors[0].class_id == db_class.class_id


def test_database_error_on_one_session_does_not_stop_the_holiday_sweep(db, make_class, monkeypatch):
    broken = make_class(total_sessions=3)  # 1/1, 3/1, 8/1
    healthy = make_class(total_sessions=3, room_id=2)
    broken_id = broken.schedules[2].schedule_id
    real_reschedule = schedule_service.reschedule_session

    def flaky(db, schedule_id, *args, **kwargs):
        if schedule_id == broken_id:
            raise SQLAlchemyError("database is locked")
        return real_reschedule(db, schedule_id, *args, **kwargs)

    monkeypatch.setattr(schedule_service, "reschedule_session", flaky)
    holiday = holiday_service.create_holiday(db, HolidayCreate(name="Closed", date=date(2024, 1, 8)))

    result = schedule_service.reschedule_sessions_for_holiday(db, holiday, "admin")

    assert result.processed_count == 1
    assert result.details[0].class_id == healthy.class_id
    assert [(e.class_id, e.rule, e.message) for e in result.errors] == [
        (broken.class_id, "database", "database is locked"),
    ]
    assert schedule_service.get_class_or_404(db, broken.class_id).schedules[2].session_date == date(2024, 1, 8)
    assert schedule_service.get_class_or_404(db, healthy.class_id).schedules[2].session_date == date(2024, 1, 10)

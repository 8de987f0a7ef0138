from datetime import date, datetime, time

import pytest

from school_scheduler.crud import makeup_crud
from school_scheduler.exceptions import InvalidStateTransitionError, ValidationError
from school_scheduler.models.attendance_model import AttendanceStatus
from school_scheduler.models.makeup_model import MakeupAttendanceStatus, MakeupStatus
from school_scheduler.models.schedule_model import ScheduleStatus
from school_scheduler.schemas.attendance_schema import AttendanceRecordIn
from school_scheduler.schemas.makeup_schema import MakeupAttendanceIn, MakeupScheduleIn
from school_scheduler.schemas.settings_schema import MakeupPolicy
from school_scheduler.services import attendance_service, makeup_service, schedule_service

NO_AUTO = MakeupPolicy(auto_create_makeup=False)


def records(*pairs):
    return [AttendanceRecordIn(student_id=student_id, status=status) for student_id, status in pairs]


@pytest.fixture()
def session(make_class):
    return make_class(total_sessions=4).schedules[2]  # 08/01/2024


def record(db, session, rows, policy=NO_AUTO):
    return attendance_service.record_attendance(
        db, session.schedule_id, rows, checked_by="teacher-1",
        now=datetime(2024, 1, 8, 12, 0), policy=policy,
    )


def test_held_status_completes_the_session(db, session):
    result = record(db, session, records((1, AttendanceStatus.present), (2, AttendanceStatus.absent)))
    assert result.status == ScheduleStatus.completed
    assert {r.student_id: r.status for r in result.records} == {1: AttendanceStatus.present, 2: AttendanceStatus.absent}
    assert all(r.checked_by == "teacher-1" for r in result.records)


@pytest.mark.parametrize("status", [AttendanceStatus.late, AttendanceStatus.sick, AttendanceStatus.leave])
def test_other_held_statuses_complete_the_session(db, session, status):
    assert record(db, session, records((1, status))).status == ScheduleStatus.completed


def test_absent_only_leaves_status_unchanged(db, session):
    result = record(db, session, records((1, AttendanceStatus.absent), (2, AttendanceStatus.absent)))
    assert result.status == ScheduleStatus.scheduled


def test_empty_list_resets_to_scheduled(db, session):
    record(db, session, records((1, AttendanceStatus.present)))
    result = record(db, session, [])
    assert result.status == ScheduleStatus.scheduled
    assert result.records == []


def test_empty_list_on_a_rescheduled_session_keeps_rescheduled(db, session):
    schedule_service.reschedule_session(db, session.schedule_id, date(2024, 1, 9), "Room busy", "admin")
    record(db, session, records((1, AttendanceStatus.present)))
    assert record(db, session, []).status == ScheduleStatus.rescheduled


def test_records_are_replaced_not_merged(db, session):
    record(db, session, records((1, AttendanceStatus.present), (2, AttendanceStatus.present)))
    result = record(db, session, records((3, AttendanceStatus.late)))
    assert [r.student_id for r in result.records] == [3]


def test_duplicate_students_are_rejected(db, session):
    with pytest.raises(ValidationError) as exc:
        record(db, session, records((1, AttendanceStatus.present), (1, AttendanceStatus.absent)))
    assert exc.value.detail["student_ids"] == [1]


def test_cancelled_session_takes_no_attendance(db, session):
    schedule_service.cancel_session(db, session.schedule_id, "Teacher away", "admin")
    with pytest.raises(InvalidStateTransitionError):
        record(db, session, records((1, AttendanceStatus.present)))


def test_auto_creates_makeups_for_allowed_statuses(db, session):
    policy = MakeupPolicy(allowed_statuses={AttendanceStatus.absent, AttendanceStatus.sick})
    result = record(db, session, records(
        (1, AttendanceStatus.present), (2, AttendanceStatus.absent),
        (3, AttendanceStatus.sick), (4, AttendanceStatus.leave),
    ), policy=policy)

    created = {m.student_id: m for m in result.makeups}
    assert set(created) == {2, 3}
    assert all(m.action == "created" for m in created.values())
    statuses = {r.student_id: r.status for r in result.records}
    # bản ghi gốc của học sinh có makeup được đánh dấu absent
    assert statuses[3] == AttendanceStatus.absent
    assert statuses[4] == AttendanceStatus.leave


def test_recording_again_does_not_duplicate_makeups(db, session):
    policy = MakeupPolicy()
    record(db, session, records((2, AttendanceStatus.absent)), policy=policy)
    result = record(db, session, records((2, AttendanceStatus.absent)), policy=policy)

    assert result.makeups == []
    assert makeup_crud.count_active_for_student_class(db, 2, session.class_id) == 1


def test_limit_refusals_are_reported_not_raised(db, make_class):
    db_class = make_class(total_sessions=3)
    policy = MakeupPolicy(makeup_limit_per_course=1)
    first, second = db_class.schedules[0], db_class.schedules[1]

    attendance_service.record_attendance(
        db, first.schedule_id, records((2, AttendanceStatus.absent)), now=datetime(2024, 1, 1, 12), policy=policy
    )
    result = attendance_service.record_attendance(
        db, second.schedule_id, records((2, AttendanceStatus.absent)), now=datetime(2024, 1, 3, 12), policy=policy
    )

    assert result.makeups[0].action == "skipped"
    assert result.makeups[0].rule == "makeup_limit"


def test_correction_to_present_removes_pending_makeup(db, session):
    policy = MakeupPolicy()
    created = record(db, session, records((2, AttendanceStatus.absent)), policy=policy)
    makeup_id = created.makeups[0].makeup_id

    result = record(db, session, records((2, AttendanceStatus.present)), policy=policy)

    assert result.status == ScheduleStatus.completed
    assert [(m.student_id, m.action, m.message) for m in result.makeups] == [(2, "removed", "deleted")]
    assert makeup_crud.get_makeup(db, makeup_id) is None


def test_correction_to_present_soft_cancels_completed_makeup(db, session):
    policy = MakeupPolicy()
    created = record(db, session, records((2, AttendanceStatus.absent)), policy=policy)
    makeup_id = created.makeups[0].makeup_id
    makeup_service.schedule_makeup(db, makeup_id, MakeupScheduleIn(
        date=date(2024, 1, 12), start_time=time(14, 0), end_time=time(15, 0),
        teacher_id=1, branch_id=1, room_id=2, confirmed_by="admin",
    ), policy=policy)
    makeup_service.record_makeup_attendance(
        db, makeup_id, MakeupAttendanceIn(status=MakeupAttendanceStatus.present, checked_by="teacher-1")
    )

    record(db, session, records((2, AttendanceStatus.present)), policy=policy)

    makeup = makeup_crud.get_makeup(db, makeup_id)
    assert makeup.status == MakeupStatus.cancelled
    assert "Attendance updated to present" in makeup.notes


# ---------------------------------------------------------
# history / summary
# ---------------------------------------------------------

def test_student_attendance_history_spans_classes_newest_first(db, make_class):
    first = make_class(total_sessions=4)  # 01/01, 03/01, 08/01, 10/01
    second = make_class(total_sessions=2, days_of_week=[2])  # 02/01, 09/01
    record(db, first.schedules[0], records((1, AttendanceStatus.present), (2, AttendanceStatus.absent)))
    record(db, first.schedules[2], records((1, AttendanceStatus.late)))
    record(db, second.schedules[1], [AttendanceRecordIn(student_id=1, status=AttendanceStatus.absent, note="Flu")])

    history = attendance_service.get_student_attendance_history(db, 1)
    assert [(h.class_id, h.session_date, h.status) for h in history] == [
        (second.class_id, date(2024, 1, 9), AttendanceStatus.absent),
        (first.class_id, date(2024, 1, 8), AttendanceStatus.late),
        (first.class_id, date(2024, 1, 1), AttendanceStatus.present),
    ]
    assert history[0].note == "Flu"
    assert history[0].session_number == 2
    assert history[0].checked_by == "teacher-1"

    window = attendance_service.get_student_attendance_history(db, 1, start=date(2024, 1, 2), end=date(2024, 1, 8))
    assert [h.session_date for h in window] == [date(2024, 1, 8)]
    assert attendance_service.get_student_attendance_history(db, 99) == []

    with pytest.raises(ValidationError) as exc:
        attendance_service.get_student_attendance_history(db, 1, start=date(2024, 1, 9), end=date(2024, 1, 1))
    assert exc.value.rule == "invalid_range"


def test_class_attendance_summary(db, make_class):
    db_class = make_class(total_sessions=4)
    record(db, db_class.schedules[0], records(
        (1, AttendanceStatus.present), (2, AttendanceStatus.absent), (3, AttendanceStatus.sick),
    ))
    record(db, db_class.schedules[2], records((1, AttendanceStatus.late), (2, AttendanceStatus.present)))

    summary = attendance_service.get_class_attendance_summary(db, db_class.class_id)
    assert summary.total_sessions == 4
    assert summary.completed_sessions == 2
    assert summary.student_stats[1].model_dump() == {"present": 1, "absent": 0, "late": 1, "attendance_rate": 100.0}
    assert summary.student_stats[2].attendance_rate == 50.0
    # sick không tính vào tỉ lệ
    assert summary.student_stats[3].model_dump() == {"present": 0, "absent": 0, "late": 0, "attendance_rate": 0.0}

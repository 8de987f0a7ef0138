from datetime import date, timedelta

import pytest

API = "/api/v1"


@pytest.fixture()
def published_class(client):
    """Lớp học mỗi ngày, bắt đầu hôm nay, đã publish."""
    payload = {
        "name": "Coding Kids",
        "code": "CK-01",
        "subject_id": 1,
        "teacher_id": 1,
        "branch_id": 1,
        "room_id": 1,
        "start_date": date.today().isoformat(),
        "total_sessions": 5,
        "days_of_week": [0, 1, 2, 3, 4, 5, 6],
        "start_time": "09:00:00",
        "end_time": "10:30:00",
        "max_students": 8,
        "allow_conflicts": True,
    }
    response = client.post(f"{API}/classes/", json=payload)
    assert response.status_code == 201
    class_id = response.json()["class_id"]

    response = client.post(f"{API}/classes/{class_id}/status", json={"status": "published", "actor": "admin"})
    assert response.status_code == 200
    return response.json()


def sessions_of(client, class_id):
    response = client.get(f"{API}/classes/{class_id}/sessions")
    assert response.status_code == 200
    return response.json()


def test_publish_generates_sessions(client, published_class):
    assert published_class["status"] == "published"
    assert published_class["end_date"] == (date.today() + timedelta(days=4)).isoformat()
    sessions = sessions_of(client, published_class["class_id"])
    assert [s["session_number"] for s in sessions] == [1, 2, 3, 4, 5]
    assert sessions[0]["session_date"] == date.today().isoformat()


def test_editable_fields_endpoint(client, published_class):
    response = client.get(f"{API}/classes/{published_class['class_id']}/editable-fields")
    assert response.status_code == 200
    assert response.json()["basic_info"] is True


def test_absence_creates_makeup_and_duplicate_is_rejected(client, published_class):
    class_id = published_class["class_id"]
    first = sessions_of(client, class_id)[0]

    response = client.put(
        f"{API}/attendances/schedules/{first['schedule_id']}",
        json={"checked_by": "teacher-1", "records": [
            {"student_id": 7, "status": "absent"},
            {"student_id": 8, "status": "present"},
        ]},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert [m["action"] for m in body["makeups"]] == ["created"]
    makeup_id = body["makeups"][0]["makeup_id"]

    response = client.get(f"{API}/makeups/{makeup_id}")
    assert response.status_code == 200
    assert response.json()["status"] == "pending"
    assert response.json()["original_session_number"] == 1

    response = client.post(f"{API}/makeups/", json={
        "student_id": 7, "class_id": class_id, "schedule_id": first["schedule_id"],
        "reason": "Sick", "requested_by": "admin",
    })
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["rule"] == "duplicate_makeup"
    assert detail["makeup_id"] == makeup_id

    response = client.post(f"{API}/makeups/{makeup_id}/schedule", json={
        "date": (date.today() + timedelta(days=1)).isoformat(),
        "start_time": "15:00:00", "end_time": "14:00:00",
        "teacher_id": 2, "branch_id": 1, "room_id": 2, "confirmed_by": "admin",
    })
    assert response.status_code == 422


def test_makeup_eligibility_endpoint(client, published_class):
    class_id = published_class["class_id"]
    client.put(f"{API}/settings/makeup-policy", json={"makeup_limit_per_course": 1, "updated_by": "admin"})
    first = sessions_of(client, class_id)[0]
    client.put(
        f"{API}/attendances/schedules/{first['schedule_id']}",
        json={"checked_by": "teacher-1", "records": [{"student_id": 7, "status": "absent"}]},
    )

    response = client.get(f"{API}/makeups/eligibility", params={"student_id": 7, "class_id": class_id})
    assert response.status_code == 200
    assert response.json() == {
        "allowed": False, "current_count": 1, "limit": 1, "message": "Makeup limit reached (1/1)",
    }

    response = client.get(f"{API}/makeups/eligibility", params={"student_id": 7, "class_id": class_id, "bypass": True})
    assert response.json()["allowed"] is True
    assert client.get(f"{API}/makeups/eligibility", params={"student_id": 7}).status_code == 422


def test_attendance_history_and_summary_endpoints(client, published_class):
    class_id = published_class["class_id"]
    sessions = sessions_of(client, class_id)
    for session, status in zip(sessions[:2], ["present", "late"]):
        client.put(
            f"{API}/attendances/schedules/{session['schedule_id']}",
            json={"checked_by": "teacher-1", "records": [{"student_id": 8, "status": status}]},
        )

    response = client.get(f"{API}/attendances/students/8")
    assert response.status_code == 200
    assert [h["session_number"] for h in response.json()] == [2, 1]

    response = client.get(f"{API}/attendances/students/8", params={"end": date.today().isoformat()})
    assert [h["status"] for h in response.json()] == ["present"]

    response = client.get(f"{API}/attendances/classes/{class_id}/summary")
    assert response.status_code == 200
    body = response.json()
    assert body["total_sessions"] == 5
    assert body["completed_sessions"] == 2
    assert body["student_stats"]["8"] == {"present": 1, "absent": 0, "late": 1, "attendance_rate": 100.0}

    assert client.get(f"{API}/attendances/classes/999/summary").status_code == 404


def test_room_availability_endpoint(client, published_class):
    response = client.post(f"{API}/availability/room", json={
        "branch_id": 1,
        "room_id": 1,
        "days_of_week": [date.today().isoweekday() % 7],
        "start_time": "10:00:00",
        "end_time": "11:00:00",
        "start_date": date.today().isoformat(),
        "end_date": (date.today() + timedelta(days=30)).isoformat(),
    })
    assert response.status_code == 200
    body = response.json()
    assert body["available"] is False
    assert body["conflicts"][0]["reference_id"] == published_class["class_id"]

    response = client.post(f"{API}/availability/room", json={
        "branch_id": 1, "room_id": 1, "days_of_week": [1],
        "start_time": "10:30:00", "end_time": "12:00:00",
        "start_date": date.today().isoformat(),
        "end_date": (date.today() + timedelta(days=30)).isoformat(),
    })
    assert response.json() == {"available": True, "conflicts": []}


def test_makeup_policy_settings(client):
    response = client.get(f"{API}/settings/makeup-policy")
    assert response.status_code == 200
    assert response.json()["makeup_limit_per_course"] == 4

    response = client.put(f"{API}/settings/makeup-policy", json={"makeup_limit_per_course": 1, "updated_by": "admin"})
    assert response.status_code == 200
    assert response.json()["makeup_limit_per_course"] == 1
    assert client.get(f"{API}/settings/makeup-policy").json()["makeup_limit_per_course"] == 1

    response = client.put(f"{API}/settings/makeup-policy", json={"allowed_statuses": ["present"]})
    assert response.status_code == 422


def test_holiday_moves_sessions(client, published_class):
    class_id = published_class["class_id"]
    holiday_date = date.today() + timedelta(days=2)

    response = client.post(f"{API}/holidays/", json={
        "name": "Founders Day", "date": holiday_date.isoformat(),
        "reschedule_sessions": True, "actor": "admin",
    })
    assert response.status_code == 201
    body = response.json()
    assert body["holiday"]["name"] == "Founders Day"
    assert body["reschedule"]["processed_count"] == 1

    sessions = sessions_of(client, class_id)
    assert holiday_date.isoformat() not in [s["session_date"] for s in sessions]
    moved = [s for s in sessions if s["original_date"] == holiday_date.isoformat()]
    assert len(moved) == 1
    assert moved[0]["status"] == "rescheduled"
    assert moved[0]["session_date"] == (date.today() + timedelta(days=5)).isoformat()

    history = client.get(f"{API}/classes/{class_id}/reschedule-history").json()
    assert len(history) == 1
    assert history[0]["changes"][0]["changed_by"] == "admin"


def test_unknown_holiday_returns_404(client):
    response = client.delete(f"{API}/holidays/42")
    assert response.status_code == 404
    assert response.json()["detail"]["holiday_id"] == 42


def test_delete_holiday(client):
    created = client.post(f"{API}/holidays/", json={"name": "Closed", "date": "2030-04-13"}).json()
    holiday_id = created["holiday"]["holiday_id"]
    assert created["reschedule"] is None

    response = client.delete(f"{API}/holidays/{holiday_id}")
    assert response.status_code == 200
    assert response.json()["name"] == "Closed"
    assert client.get(f"{API}/holidays/", params={"year": 2030}).json() == []

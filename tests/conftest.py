import sys
import os
import itertools
import time as time_module
from datetime import date, datetime, time, timezone

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from school_scheduler.api.deps import get_db
from school_scheduler.database import Base
from school_scheduler.models.class_model import ClassStatus
from school_scheduler.schemas.class_schema import ClassCreate
from school_scheduler.services import class_service
from school_scheduler.services.settings_service import policy_cache
from main import app

# 1. Cấu hình SQLite In-Memory (DB ảo)
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        policy_cache.invalidate()


@pytest.fixture()
def client(db):
    # 2. Hàm Override (Hàm thay thế kết nối DB)
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def class_payload():
    def _payload(**overrides):
        data = dict(
            name="Robotics A1",
            code="RB-A1",
            subject_id=1,
            teacher_id=1,
            branch_id=1,
            room_id=1,
            start_date=date(2024, 1, 1),  # thứ Hai
            total_sessions=10,
            days_of_week=[1, 3],
            start_time=time(10, 0),
            end_time=time(11, 0),
            max_students=10,
            min_students=1,
        )
        data.update(overrides)
        return ClassCreate(**data)
    return _payload


@pytest.fixture()
def make_class(db, class_payload):
    """Tạo lớp (mặc định đã publish, bỏ qua kiểm tra phòng)."""
    counter = itertools.count(1)

    def _make(publish=True, **overrides):
        overrides.setdefault("code", f"CL-{next(counter)}")
        overrides.setdefault("allow_conflicts", True)
        db_class = class_service.create_class(db, class_payload(**overrides))
        if publish:
            db_class = class_service.transition_class_status(db, db_class.class_id, ClassStatus.published)
        return db_class
    return _make


@pytest.fixture()
def far_timezone(monkeypatch):
    """
    Đặt múi giờ địa phương sao cho ngày địa phương khác ngày UTC hiện tại
    (UTC-12 trước 12h UTC, UTC+12 sau 12h UTC).
    """
    if not hasattr(time_module, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    # Chuỗi TZ kiểu POSIX: "FAR+12" = UTC-12, không cần dữ liệu zoneinfo
    utc_hour = datetime.now(timezone.utc).hour
    monkeypatch.setenv("TZ", "FAR+12" if utc_hour < 12 else "FAR-12")
    time_module.tzset()
    yield
    monkeypatch.undo()
    time_module.tzset()

from datetime import datetime, date, time, timezone
from typing import Iterable, Optional, Union

# 0 = Chủ nhật ... 6 = Thứ bảy (cùng quy ước với dữ liệu days_of_week)
WEEKDAY_NAMES = {
    0: "Sunday",
    1: "Monday",
    2: "Tuesday",
    3: "Wednesday",
    4: "Thursday",
    5: "Friday",
    6: "Saturday",
}


def weekday_index(day: date) -> int:
    """Thứ của ngày theo quy ước 0 = Chủ nhật."""
    return day.isoweekday() % 7


def to_naive_time(t: Union[str, time]) -> time:
    """
    Convert string ISO hoặc datetime.time có tzinfo sang naive time (HH:MM:SS)
    """
    if isinstance(t, time):
        return t.replace(tzinfo=None)
    elif isinstance(t, str):
        # nếu string dạng "04:25:43.964Z" hoặc "04:25:43"
        if t.endswith("Z"):
            t = t[:-1]
        return time.fromisoformat(t).replace(tzinfo=None)
    return t


def to_date_key(d: Union[str, date, datetime, None]) -> Optional[date]:
    """
    Khóa ngày theo lịch, không phụ thuộc múi giờ.
    datetime lấy phần ngày theo giờ địa phương của chính nó, không đổi sang UTC.
    """
    if d is None:
        return None
    if isinstance(d, datetime):
        return d.date()
    if isinstance(d, date):
        return d
    if isinstance(d, str):
        d = d.strip()
        # "2024-01-08", "2024-01-08T00:00:00+07:00", "2024-01-08 10:00:00"
        try:
            return date.fromisoformat(d[:10])
        except ValueError:
            pass
        for fmt in ("%d/%m/%Y", "%d-%m-%Y"):
            try:
                return datetime.strptime(d, fmt).date()
            except ValueError:
                continue
        raise ValueError(f"Unrecognised date value: {d!r}")
    raise TypeError(f"Cannot convert {type(d).__name__} to a calendar date")


def times_overlap(start_a: time, end_a: time, start_b: time, end_b: time) -> bool:
    """Khoảng nửa mở [start, end): chạm nhau ở biên không tính là trùng."""
    return start_a < end_b and start_b < end_a


def date_ranges_overlap(start_a: date, end_a: date, start_b: date, end_b: date) -> bool:
    """Khoảng ngày đóng [start, end]."""
    return start_a <= end_b and start_b <= end_a


def days_intersect(days_a: Iterable[int], days_b: Iterable[int]) -> bool:
    return bool(set(days_a or []) & set(days_b or []))


def utc_now() -> datetime:
    """Thời điểm hiện tại (naive, UTC) dùng để đóng dấu bản ghi."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today(now: Union[str, date, datetime, None] = None) -> date:
    """
    Ngày hiện tại theo lịch địa phương.
    Nếu có `now` thì chỉ lấy phần ngày của nó (không đổi múi giờ).
    """
    if now is not None:
        return to_date_key(now)
    return date.today()

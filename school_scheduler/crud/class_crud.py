from sqlalchemy.orm import Session
from sqlalchemy import select, update
from typing import Iterable, List, Optional
from datetime import date

from school_scheduler.models.class_model import Class, ClassStatus, ACTIVE_CLASS_STATUSES
from school_scheduler.schemas.class_schema import ClassCreate


def get_class(db: Session, class_id: int) -> Optional[Class]:
    return db.query(Class).filter(Class.class_id == class_id).first()


def get_classes(
    db: Session,
    branch_id: Optional[int] = None,
    statuses: Optional[Iterable[ClassStatus]] = None,
    skip: int = 0,
    limit: int = 100,
) -> List[Class]:
    query = db.query(Class)
    if branch_id is not None:
        query = query.filter(Class.branch_id == branch_id)
    if statuses:
        query = query.filter(Class.status.in_(list(statuses)))
    return query.order_by(Class.start_date.desc(), Class.class_id).offset(skip).limit(limit).all()


def get_class_ids_by_status(db: Session, statuses: Iterable[ClassStatus]) -> List[int]:
    """Chỉ lấy ID để các tác vụ hàng loạt đọc lại từng lớp trong phiên riêng."""
    stmt = select(Class.class_id).where(Class.status.in_(list(statuses))).order_by(Class.class_id)
    return list(db.execute(stmt).scalars().all())


def get_active_classes_in_room(
    db: Session, branch_id: int, room_id: int, exclude_class_id: Optional[int] = None
) -> List[Class]:
    """Các lớp chưa kết thúc / chưa hủy đang dùng phòng."""
    query = db.query(Class).filter(
        Class.branch_id == branch_id,
        Class.room_id == room_id,
        Class.status.in_(ACTIVE_CLASS_STATUSES),
    )
    if exclude_class_id is not None:
        query = query.filter(Class.class_id != exclude_class_id)
    return query.order_by(Class.class_id).all()


def code_exists(db: Session, code: str, exclude_class_id: Optional[int] = None) -> bool:
    query = db.query(Class.class_id).filter(Class.code == code)
    if exclude_class_id is not None:
        query = query.filter(Class.class_id != exclude_class_id)
    return query.first() is not None


def create_class(db: Session, class_in: ClassCreate, end_date: date) -> Class:
    data = class_in.model_dump(exclude={"allow_conflicts"})
    db_class = Class(**data, end_date=end_date, enrolled_count=0, status=ClassStatus.draft)
    db.add(db_class)
    db.commit()
    db.refresh(db_class)
    return db_class


def compare_and_set_status(
    db: Session, class_id: int, expected: ClassStatus, new_status: ClassStatus, **values
) -> bool:
    """
    Ghi có điều kiện: chỉ đổi trạng thái khi lớp vẫn đang ở `expected`.
    Không commit, trả về True nếu có đúng một dòng được cập nhật.
    """
    stmt = (
        update(Class)
        .where(Class.class_id == class_id, Class.status == expected)
        .values(status=new_status, **values)
        .execution_options(synchronize_session="fetch")
    )
    result = db.execute(stmt)
    return result.rowcount == 1

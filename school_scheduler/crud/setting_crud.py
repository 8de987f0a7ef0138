from sqlalchemy.orm import Session
from typing import Any, Dict, Optional

from school_scheduler.models.setting_model import Setting


def get_setting(db: Session, key: str) -> Optional[Setting]:
    return db.query(Setting).filter(Setting.key == key).first()


def upsert_setting(db: Session, key: str, value: Dict[str, Any], updated_by: Optional[str] = None) -> Setting:
    db_setting = get_setting(db, key)
    if db_setting is None:
        db_setting = Setting(key=key)
        db.add(db_setting)
    db_setting.value = value
    db_setting.updated_by = updated_by
    db.commit()
    db.refresh(db_setting)
    return db_setting

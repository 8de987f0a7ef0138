# school_scheduler/services/settings_service.py
import logging
from typing import Optional

from sqlalchemy.orm import Session

from school_scheduler.config import POLICY_CACHE_TTL_SECONDS
from school_scheduler.crud import setting_crud
from school_scheduler.schemas.settings_schema import MakeupPolicy, MakeupPolicyUpdate
from school_scheduler.services.cache import TTLCache

logger = logging.getLogger(__name__)

MAKEUP_SETTING_KEY = "makeup"

policy_cache = TTLCache(POLICY_CACHE_TTL_SECONDS)


class PolicyStore:
    """
    Đọc cấu hình makeup từ bảng settings, qua cache có TTL.
    Giá trị JSON được kiểm tra một lần bằng MakeupPolicy tại đây.
    """

    def __init__(self, db: Session, cache: Optional[TTLCache] = None):
        self.db = db
        self.cache = cache if cache is not None else policy_cache

    def _load(self) -> MakeupPolicy:
        db_setting = setting_crud.get_setting(self.db, MAKEUP_SETTING_KEY)
        if db_setting is None or not db_setting.value:
            return MakeupPolicy()
        return MakeupPolicy.model_validate(db_setting.value)

    def get_makeup_policy(self) -> MakeupPolicy:
        return self.cache.get_or_refresh(MAKEUP_SETTING_KEY, self._load)


def get_makeup_policy(db: Session, cache: Optional[TTLCache] = None) -> MakeupPolicy:
    return PolicyStore(db, cache).get_makeup_policy()


def update_makeup_policy(db: Session, policy_in: MakeupPolicyUpdate, cache: Optional[TTLCache] = None) -> MakeupPolicy:
    store = PolicyStore(db, cache)
    current = store._load()

    changes = policy_in.model_dump(exclude_unset=True, exclude_none=True, exclude={"updated_by"})
    policy = MakeupPolicy.model_validate({**current.model_dump(), **changes})

    setting_crud.upsert_setting(
        db, MAKEUP_SETTING_KEY, policy.model_dump(mode="json"), updated_by=policy_in.updated_by
    )
    store.cache.invalidate(MAKEUP_SETTING_KEY)
    logger.info("Makeup policy updated by %s: %s", policy_in.updated_by, changes)
    return policy

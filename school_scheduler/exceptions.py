# school_scheduler/exceptions.py
from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """
    Lỗi nghiệp vụ cơ sở của engine.
    `rule` cho biết quy tắc nào bị vi phạm, `detail` chứa dữ liệu có cấu trúc
    (lớp, buổi học, học sinh...) để UI hiển thị mà không cần truy vấn lại.
    """
    status_code = 400
    default_rule = "error"

    def __init__(self, message: str, rule: Optional[str] = None, **detail: Any):
        super().__init__(message)
        self.message = message
        self.rule = rule or self.default_rule
        self.detail = detail

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "rule": self.rule, **self.detail}


class ValidationError(SchedulingError):
    status_code = 400
    default_rule = "validation"


class NotFoundError(SchedulingError):
    status_code = 404
    default_rule = "not_found"


class ConflictError(SchedulingError):
    status_code = 409
    default_rule = "conflict"


class LimitExceededError(SchedulingError):
    status_code = 409
    default_rule = "makeup_limit"

    def __init__(self, message: str, current_count: int, limit: int, rule: Optional[str] = None, **detail: Any):
        super().__init__(message, rule=rule, current_count=current_count, limit=limit, **detail)
        self.current_count = current_count
        self.limit = limit


class InvalidStateTransitionError(SchedulingError):
    status_code = 409
    default_rule = "invalid_transition"

    def __init__(self, message: str, current: Any, target: Any, **detail: Any):
        super().__init__(
            message,
            current=getattr(current, "value", current),
            target=getattr(target, "value", target),
            **detail,
        )
        self.current = current
        self.target = target


class DependencyError(SchedulingError):
    status_code = 503
    default_rule = "dependency_unavailable"

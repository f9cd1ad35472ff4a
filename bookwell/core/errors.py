"""
Typed failure results for booking operations

Expected business outcomes (conflicts, quotas, inactive entities) are
returned as values so callers can branch on them. Only programming errors
raise.
"""

from dataclasses import dataclass, field as dc_field
from enum import Enum
from typing import Any, Dict, Optional


class FailureCategory(str, Enum):
    """Category of a rejected operation"""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    POLICY = "policy"
    CONFLICT = "conflict"
    INTERNAL = "internal"


HTTP_STATUS_BY_CATEGORY = {
    FailureCategory.VALIDATION: 400,
    FailureCategory.NOT_FOUND: 404,
    FailureCategory.POLICY: 403,
    FailureCategory.CONFLICT: 409,
    FailureCategory.INTERNAL: 500,
}


@dataclass(frozen=True)
class BookingFailure:
    """A rejected booking operation"""
    category: FailureCategory
    code: str
    message: str
    field: Optional[str] = None
    details: Dict[str, Any] = dc_field(default_factory=dict)

    @property
    def http_status(self) -> int:
        return HTTP_STATUS_BY_CATEGORY[self.category]

    def to_dict(self) -> Dict[str, Any]:
        data = {"code": self.code, "message": self.message, "category": self.category.value}
        if self.field:
            data["field"] = self.field
        if self.details:
            data["details"] = self.details
        return data

    # Constructors
    @classmethod
    def validation(cls, code: str, message: str, field: Optional[str] = None) -> "BookingFailure":
        return cls(FailureCategory.VALIDATION, code, message, field=field)

    @classmethod
    def not_found(cls, code: str, message: str) -> "BookingFailure":
        return cls(FailureCategory.NOT_FOUND, code, message)

    @classmethod
    def policy(cls, code: str, message: str, **details) -> "BookingFailure":
        return cls(FailureCategory.POLICY, code, message, details=details)

    @classmethod
    def conflict(cls, code: str, message: str, **details) -> "BookingFailure":
        return cls(FailureCategory.CONFLICT, code, message, details=details)

    @classmethod
    def internal(cls, message: str = "Unexpected store error") -> "BookingFailure":
        return cls(FailureCategory.INTERNAL, "store_error", message)

# supportdesk/schemas/common.py
from pydantic import BaseModel
from typing import Any, Optional, Generic, TypeVar

from supportdesk.utils.datetime_utils import to_iso_string, utc_now

T = TypeVar('T')

class ErrorDetail(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None

class APIResponse(BaseModel, Generic[T]):
    """Standard API response envelope."""
    success: bool
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None
    meta: dict[str, Any] = {}

    @classmethod
    def ok(cls, data: Any = None, **meta: Any) -> "APIResponse":
        return cls(success=True, data=data, meta={"timestamp": to_iso_string(utc_now()), **meta})

    @classmethod
    def fail(cls, code: str, message: str, details: Optional[dict] = None, **meta: Any) -> "APIResponse":
        """Failure relayed to an operator or user, returned with HTTP 200."""
        return cls(
            success=False,
            error=ErrorDetail(code=code, message=message, details=details or None),
            meta={"timestamp": to_iso_string(utc_now()), **meta},
        )

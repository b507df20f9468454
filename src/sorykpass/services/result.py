"""
Typed results for checkout operations
"""
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class FailureReason(Enum):
    """Expected, user-facing checkout failures"""
    INVALID_REQUEST = "INVALID_REQUEST"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    EVENT_NOT_PUBLISHED = "EVENT_NOT_PUBLISHED"
    TICKET_TYPE_NOT_FOUND = "TICKET_TYPE_NOT_FOUND"
    SEAT_NOT_FOUND = "SEAT_NOT_FOUND"
    SEATS_UNAVAILABLE = "SEATS_UNAVAILABLE"
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    INVALID_PROMO_CODE = "INVALID_PROMO_CODE"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a value or a failure reason with a user-safe message"""

    value: Optional[T] = None
    failure: Optional[FailureReason] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, failure: FailureReason, message: str) -> "Result[T]":
        return cls(failure=failure, message=message)

    @property
    def is_ok(self) -> bool:
        return self.failure is None

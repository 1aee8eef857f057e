"""Structured outcome of a service call.

Business-rule rejections are reported as a failed ``Result`` rather than
raised, so callers can turn them into HTTP responses without catching
anything. Only unexpected failures (the store being unreachable and the like)
propagate as exceptions.
"""

import enum
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class FailureKind(enum.Enum):
    USER_NOT_FOUND = "UserNotFound"
    QUOTA_EXCEEDED = "QuotaExceeded"
    TOO_MANY_BOOKS = "TooManyBooks"
    NO_BOOKS = "NoBooks"
    BOOK_NOT_FOUND = "BookNotFound"
    BOOK_UNAVAILABLE = "BookUnavailable"
    ADMIN_NOT_CONFIGURED = "AdminNotConfigured"
    INVALID_TRANSITION = "InvalidTransition"
    REQUEST_NOT_FOUND = "RequestNotFound"
    INVALID_CREDENTIALS = "InvalidCredentials"
    INVALID_TOKEN = "InvalidToken"

    @property
    def status_code(self) -> int:
        return 404 if self is FailureKind.REQUEST_NOT_FOUND else 400


@dataclass(frozen=True)
class Result(Generic[T]):
    is_success: bool
    value: Optional[T] = None
    kind: Optional[FailureKind] = None
    message: Optional[str] = None

    @property
    def status_code(self) -> Optional[int]:
        return self.kind.status_code if self.kind else None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(is_success=True, value=value)

    @classmethod
    def failure(cls, kind: FailureKind, message: str) -> "Result[T]":
        return cls(is_success=False, kind=kind, message=message)

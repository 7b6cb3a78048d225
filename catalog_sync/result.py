# catalog_sync/result.py
# Uniform success/failure values passed between sync components.
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")

TRANSPORT = "transport"
HTTP = "http"
RATE_LIMITED = "rate_limited"
NOT_FOUND = "not_found"
VALIDATION = "validation"


@dataclass
class Failure:
    kind: str
    message: str
    status: Optional[int] = None
    body: Any = None

    @property
    def is_not_found(self) -> bool:
        return self.kind == NOT_FOUND

    def __str__(self) -> str:
        if self.status:
            return f"{self.message} (Response Code: {self.status})"
        return self.message


@dataclass
class ApiResult(Generic[T]):
    """Either a value or a Failure. Never both."""
    value: Optional[T] = None
    failure: Optional[Failure] = None
    status: Optional[int] = None
    extra: dict = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.failure is None

    @classmethod
    def success(cls, value: T, status: Optional[int] = None, **extra) -> "ApiResult[T]":
        return cls(value=value, status=status, extra=extra)

    @classmethod
    def fail(cls, kind: str, message: str, status: Optional[int] = None, body: Any = None, **extra) -> "ApiResult[T]":
        return cls(failure=Failure(kind, message, status, body), status=status, extra=extra)

    @classmethod
    def not_found(cls, message: str = "Not found") -> "ApiResult[T]":
        return cls.fail(NOT_FOUND, message, 404)

    @property
    def message(self) -> str:
        return str(self.failure) if self.failure else ""

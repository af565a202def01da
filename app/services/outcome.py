"""
Success/failure outcome returned by every lifecycle, scoring, certificate
and catalog operation. The API layer maps ErrorKind to an HTTP status.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    INTEGRITY = "INTEGRITY"
    SCORING_FAILED = "SCORING_FAILED"  # inspection left `completed`, not scored
    STORE_ERROR = "STORE_ERROR"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, error: str, **details: Any) -> "Outcome[T]":
        return cls(ok=False, error=error, kind=kind, details=details)

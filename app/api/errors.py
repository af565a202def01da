"""
Outcome → HTTP mapping shared by every router.
"""
from __future__ import annotations

from typing import TypeVar

from fastapi import HTTPException

from app.services.outcome import ErrorKind, Outcome

T = TypeVar("T")

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.PRECONDITION_FAILED: 409,
    ErrorKind.INTEGRITY: 409,
    ErrorKind.SCORING_FAILED: 500,
    ErrorKind.STORE_ERROR: 500,
}


def unwrap(outcome: Outcome[T]) -> T:
    """Return the value of a successful outcome, raise HTTPException otherwise."""
    if outcome.ok:
        return outcome.value

    status_code = STATUS_BY_KIND.get(outcome.kind, 500)
    raise HTTPException(
        status_code=status_code,
        detail={
            "error": outcome.error,
            "kind": outcome.kind.value if outcome.kind else None,
            **outcome.details,
        },
    )

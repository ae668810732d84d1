from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class NotAuthenticatedError(Exception):
    """Raised when a mutation is called without an acting user."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message)
        self.message = message


class FailureKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class MutationResult(Generic[T]):
    """
    Outcome of a mutation.

    Validation and not-found failures are returned, not raised, so callers
    can render them next to the control that triggered the mutation.
    """

    value: T | None = None
    kind: FailureKind | None = None
    error: str | None = None
    meta: dict[str, Any] | None = None

    @property
    def ok(self) -> bool:
        return self.kind is None

    @classmethod
    def success(cls, value: T | None = None, **meta: Any) -> "MutationResult[T]":
        return cls(value=value, meta=meta or None)

    @classmethod
    def invalid(cls, message: str) -> "MutationResult[T]":
        return cls(kind=FailureKind.VALIDATION, error=message)

    @classmethod
    def not_found(cls, message: str) -> "MutationResult[T]":
        return cls(kind=FailureKind.NOT_FOUND, error=message)

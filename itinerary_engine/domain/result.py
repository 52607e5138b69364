"""
Minimal success/failure container used inside components that must never
raise to their callers (the timeline constructor collapses a failed Result
into a fallback plan at its public boundary).
"""
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    value: Optional[T] = None
    error: Optional[Exception] = None

    @classmethod
    def ok(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: Exception) -> "Result[T]":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def unwrap_or_else(self, fallback: Callable[[Exception], T]) -> T:
        """Return the value, or build one from the error."""
        if self.error is None:
            return self.value
        return fallback(self.error)

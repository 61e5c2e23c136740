"""Typed results for lookups that may degrade instead of failing."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar


T = TypeVar("T")


@dataclass(frozen=True)
class LookupResult(Generic[T]):
    """Outcome of a query against an external store.

    `value` is always usable. When the query itself failed, `error` carries
    the message and `value` holds whatever the caller's fail-open (or
    fail-closed) policy substituted.
    """
    value: T
    error: Optional[str] = None

    @property
    def degraded(self) -> bool:
        """True when the value is a policy substitute, not a real answer."""
        return self.error is not None

    @classmethod
    def ok(cls, value: T) -> "LookupResult[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, value: T, error: BaseException) -> "LookupResult[T]":
        return cls(value=value, error=f"{type(error).__name__}: {error}")

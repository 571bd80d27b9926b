from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

from .errors import ERRORS_BY_KIND, ErrorKind

T = TypeVar("T")


@dataclass(slots=True)
class OperationResult(Generic[T]):
    """Tagged outcome of a ticket operation.

    Successful results carry ``value``; failed ones carry ``error_kind`` and a
    human readable ``message``. Callers branch on ``ok`` instead of catching
    exceptions.
    """

    ok: bool
    value: T | None = None
    error_kind: ErrorKind | None = None
    message: str = ""

    @classmethod
    def success(cls, value: T) -> "OperationResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error_kind: ErrorKind, message: str) -> "OperationResult[T]":
        return cls(ok=False, error_kind=error_kind, message=message)

    def unwrap(self) -> T:
        """Return the value or raise the error matching ``error_kind``."""

        if self.ok:
            return self.value  # type: ignore[return-value]
        assert self.error_kind is not None
        raise ERRORS_BY_KIND[self.error_kind](self.message)

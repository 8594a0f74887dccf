"""
Outcome -- typed result carrying either a value or a kernel error.

Responsibility:
    Expected failures (malformed scans, rule violations, unknown
    identifiers) are results, not exceptions.  Every engine and service
    entrypoint returns an ``Outcome`` so the caller can render the
    specific reason inline without a try/except around each call.

Architecture position:
    Kernel > Domain -- pure value type, zero I/O.

Invariants enforced:
    - Exactly one of ``value`` / ``error`` is meaningful: a rejected
      outcome always carries a ``KapanKernelError``.
    - Warnings never turn an accepted outcome into a rejection.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from kapan_kernel.exceptions import KapanKernelError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Accepted value or rejected error.

    Usage:
        outcome = parse_lot_barcode("61-B-1057")
        if outcome.ok:
            lot = outcome.value
        else:
            show(outcome.error.code, str(outcome.error))
    """

    value: T | None = None
    error: KapanKernelError | None = None
    warnings: tuple[str, ...] = ()

    @classmethod
    def accept(cls, value: T, warnings: tuple[str, ...] = ()) -> Outcome[T]:
        return cls(value=value, error=None, warnings=tuple(warnings))

    @classmethod
    def reject(cls, error: KapanKernelError) -> Outcome[T]:
        if error is None:
            raise ValueError("A rejected outcome needs an error")
        return cls(value=None, error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def code(self) -> str | None:
        """Error code of a rejected outcome, None when accepted."""
        return self.error.code if self.error is not None else None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def map(self, func: Callable[[T], U]) -> Outcome[U]:
        """Transform an accepted value; rejections pass through unchanged."""
        if self.error is not None:
            return Outcome(value=None, error=self.error, warnings=self.warnings)
        return Outcome(value=func(self.value), error=None, warnings=self.warnings)  # type: ignore[arg-type]

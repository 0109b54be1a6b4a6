"""Tagged per-instrument stage outcomes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class StageResult(Generic[T]):
    """Outcome of running one stage for one instrument.

    ``skipped`` means the instrument was legitimately filtered out (not enough
    history, failed a rule). ``failed`` means something went wrong evaluating
    it. Neither aborts the run.
    """

    status: Literal["ok", "skipped", "failed"]
    value: T | None = None
    reason: str = ""
    error: Exception | None = None

    @classmethod
    def ok(cls, value: T) -> StageResult[T]:
        return cls(status="ok", value=value)

    @classmethod
    def skipped(cls, reason: str) -> StageResult[T]:
        return cls(status="skipped", reason=reason)

    @classmethod
    def failed(cls, error: Exception) -> StageResult[T]:
        return cls(status="failed", reason=str(error), error=error)

    @property
    def is_ok(self) -> bool:
        return self.status == "ok"

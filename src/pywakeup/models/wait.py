"""Status-wait state."""

from __future__ import annotations

from enum import StrEnum


class WaitOutcome(StrEnum):
    WAITING = "waiting"
    SATISFIED = "satisfied"
    EXHAUSTED = "exhausted"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not WaitOutcome.WAITING

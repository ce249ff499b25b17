"""Backoff helpers for poll and stream retries."""
from __future__ import annotations

from dataclasses import dataclass, field
import random


def compute_backoff(
    attempts: int,
    *,
    base: float,
    cap: float,
    rng: random.Random | None = None,
) -> int:
    """Return ``base * 2**attempts`` seconds capped at ``cap``, plus up to 50% jitter.

    The result is capped again after jitter so a retry is never scheduled
    later than ``cap`` seconds.
    """
    rng = rng or random
    # 2**64 is already far past any cap; bound the exponent so it cannot overflow.
    exponent = max(0, min(int(attempts), 64))
    try:
        secs = int(base * (2 ** exponent))
    except OverflowError:
        secs = int(cap)
    secs = min(secs, int(cap))
    jitter = rng.randint(0, max(secs, 0) // 2)
    return min(secs + jitter, int(cap))


@dataclass
class RetryBudget:
    """Attempt counter feeding :func:`compute_backoff`.

    Poll and stream paths each own one so a flaky stream never delays poll
    recovery and vice versa.
    """

    base_delay: float = 2.0
    max_delay: float = 60.0
    max_attempts: int = 20
    rng: random.Random = field(default_factory=random.Random, repr=False)
    attempts: int = 0

    def reset(self) -> None:
        self.attempts = 0

    def record_failure(self) -> int:
        self.attempts = min(self.attempts + 1, self.max_attempts)
        return self.attempts

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_delay(self, *, cap: float | None = None) -> int:
        return compute_backoff(
            self.attempts,
            base=self.base_delay,
            cap=self.max_delay if cap is None else cap,
            rng=self.rng,
        )

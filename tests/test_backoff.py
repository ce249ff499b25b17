import random

import pytest

from orion.services.utils.backoff import RetryBudget, compute_backoff


@pytest.mark.parametrize("attempts", [0, 1, 2, 3, 5, 10, 50, 1000])
def test_compute_backoff_stays_within_bounds(attempts):
    rng = random.Random(7)
    for _ in range(50):
        delay = compute_backoff(attempts, base=2, cap=60, rng=rng)
        secs = min(int(2 * 2 ** min(attempts, 64)), 60)
        assert secs <= delay <= min(secs + secs // 2, 60)


def test_compute_backoff_honours_small_cap():
    rng = random.Random(1)
    assert all(compute_backoff(n, base=2, cap=5, rng=rng) <= 5 for n in range(20))


def test_compute_backoff_zero_attempts_is_base_plus_jitter():
    rng = random.Random(3)
    values = {compute_backoff(0, base=3, cap=60, rng=rng) for _ in range(100)}
    assert values <= {3, 4}


def test_retry_budget_counts_and_resets():
    budget = RetryBudget(base_delay=2, max_delay=60, max_attempts=3, rng=random.Random(0))
    assert budget.record_failure() == 1
    assert budget.record_failure() == 2
    assert budget.record_failure() == 3
    assert budget.record_failure() == 3
    assert budget.exhausted
    budget.reset()
    assert budget.attempts == 0
    assert not budget.exhausted


def test_retry_budget_next_delay_uses_cap_override():
    budget = RetryBudget(base_delay=2, max_delay=60, rng=random.Random(0))
    for _ in range(10):
        budget.record_failure()
    assert budget.next_delay(cap=5) == 5
    assert budget.next_delay() == 60

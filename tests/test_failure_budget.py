from zoneharvest.runtime.config import CoordinationConfig
from zoneharvest.runtime.failure_budget import FailureBudget


def test_fresh_budget_allows_attempts():
    budget = FailureBudget()

    assert budget.should_attempt(0, CoordinationConfig())
    assert budget.failure_count == 0


def test_retry_gap_after_single_failure():
    cfg = CoordinationConfig(retry_interval=100)
    budget = FailureBudget()
    budget.record_attempt(10)
    budget.record_failure(20)

    assert not budget.should_attempt(119, cfg)
    assert budget.should_attempt(120, cfg)
    assert budget.failure_count == 1


def test_exhausted_budget_waits_out_cooldown_then_resets():
    cfg = CoordinationConfig(max_failures=3, failure_cooldown=1500)
    budget = FailureBudget()
    for tick in (0, 200, 400):
        budget.record_attempt(tick)
        budget.record_failure(tick + 151)

    assert budget.failure_count == 3
    assert budget.is_exhausted(cfg)
    assert not budget.should_attempt(1900, cfg)
    assert budget.cooldown_remaining(1900, cfg) == 1

    assert budget.should_attempt(1901, cfg)
    assert budget.failure_count == 0
    assert budget.last_failure_tick is None


def test_reset_clears_failures():
    budget = FailureBudget(failure_count=5, last_attempt_tick=3, last_failure_tick=4)

    budget.reset()

    assert budget.failure_count == 0
    assert budget.last_failure_tick is None
    assert budget.should_attempt(5, CoordinationConfig())

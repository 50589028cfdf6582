from __future__ import annotations

from dataclasses import dataclass

from .config import CoordinationConfig


@dataclass(slots=True)
class FailureBudget:
    """Counts failed zone transitions for one agent.

    Once ``max_failures`` is reached the agent stays benched until
    ``failure_cooldown`` ticks have passed since its last attempt; the next
    ``should_attempt`` after that resets the budget.  Below the limit a
    failure still blocks new attempts for ``retry_interval`` ticks.
    """

    failure_count: int = 0
    last_attempt_tick: int | None = None
    last_failure_tick: int | None = None

    def record_attempt(self, tick: int) -> None:
        self.last_attempt_tick = int(tick)

    def record_failure(self, tick: int) -> int:
        self.failure_count += 1
        self.last_failure_tick = int(tick)
        if self.last_attempt_tick is None:
            self.last_attempt_tick = int(tick)
        return self.failure_count

    def is_exhausted(self, cfg: CoordinationConfig) -> bool:
        return self.failure_count >= cfg.max_failures

    def cooldown_remaining(self, tick: int, cfg: CoordinationConfig) -> int:
        if not self.is_exhausted(cfg) or self.last_attempt_tick is None:
            return 0
        return max(0, cfg.failure_cooldown - (int(tick) - self.last_attempt_tick) + 1)

    def should_attempt(self, tick: int, cfg: CoordinationConfig) -> bool:
        if self.is_exhausted(cfg):
            if self.last_attempt_tick is not None and int(tick) - self.last_attempt_tick <= cfg.failure_cooldown:
                return False
            self.reset()
            return True
        if self.last_failure_tick is not None and int(tick) - self.last_failure_tick < cfg.retry_interval:
            return False
        return True

    def reset(self) -> None:
        self.failure_count = 0
        self.last_failure_tick = None


__all__ = ["FailureBudget"]

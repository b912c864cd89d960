"""Running accuracy and deviation totals for a session."""

from __future__ import annotations

from dataclasses import dataclass

from .evaluator import AttemptOutcome


@dataclass(frozen=True)
class RunningStats:
    total_attempts: int = 0
    successful_hits: int = 0
    accuracy_pct: float = 0.0
    average_deviation_pct: float = 0.0

    def record(self, outcome: AttemptOutcome) -> "RunningStats":
        """Fold one outcome into new totals; the mean is updated incrementally."""
        total = self.total_attempts + 1
        hits = self.successful_hits + (1 if outcome.success else 0)
        average = (self.average_deviation_pct * self.total_attempts + outcome.deviation_pct) / total
        return RunningStats(
            total_attempts=total,
            successful_hits=hits,
            accuracy_pct=hits / total * 100.0,
            average_deviation_pct=average,
        )


__all__ = ["RunningStats"]

"""Tests for running session statistics."""

from __future__ import annotations

import random

import pytest

from trainer_node.evaluator import AttemptOutcome, AttemptReason
from trainer_node.stats import RunningStats


def outcome(deviation: float, success: bool) -> AttemptOutcome:
    reason = AttemptReason.PERFECT if success else AttemptReason.WRONG_PRESSURE
    return AttemptOutcome(deviation_pct=deviation, success=success, reason=reason)


def test_empty_stats_are_zero() -> None:
    stats = RunningStats()
    assert stats.total_attempts == 0
    assert stats.successful_hits == 0
    assert stats.accuracy_pct == 0.0
    assert stats.average_deviation_pct == 0.0


def test_record_returns_new_totals_without_mutating() -> None:
    before = RunningStats()
    after = before.record(outcome(4.0, True))

    assert before.total_attempts == 0
    assert after.total_attempts == 1
    assert after.successful_hits == 1
    assert after.accuracy_pct == pytest.approx(100.0)
    assert after.average_deviation_pct == pytest.approx(4.0)


def test_accuracy_and_mean_over_random_history() -> None:
    rng = random.Random(5)
    stats = RunningStats()
    deviations = []
    hits = 0
    for _ in range(57):
        deviation = rng.uniform(0.0, 40.0)
        success = deviation <= 10.0
        hits += int(success)
        deviations.append(deviation)
        stats = stats.record(outcome(deviation, success))
        assert stats.accuracy_pct == pytest.approx(100.0 * hits / len(deviations))

    assert stats.total_attempts == 57
    assert stats.successful_hits == hits
    assert stats.average_deviation_pct == pytest.approx(sum(deviations) / len(deviations))


def test_wrong_key_penalty_counts_toward_mean() -> None:
    stats = RunningStats().record(outcome(2.0, True))
    stats = stats.record(AttemptOutcome(deviation_pct=100.0, success=False, reason=AttemptReason.WRONG_KEY))

    assert stats.accuracy_pct == pytest.approx(50.0)
    assert stats.average_deviation_pct == pytest.approx(51.0)

"""Read-only view models handed to whatever presents the session."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .evaluator import AttemptOutcome, AttemptReason, EvalPhase, EvaluationRules
from .sequence import TargetSpec
from .state import ConnectionStatus, SessionPhase, SessionState
from .stats import RunningStats
from .telemetry import KeySnapshot, find_key

LOW_BAND_MAX = 0.3
MID_BAND_MAX = 0.7


class KeyFeedback(str, Enum):
    IDLE = "idle"
    TARGET = "target"
    SUCCESS = "success"
    ERROR = "error"


class PressureBand(str, Enum):
    LOW = "low"
    MID = "mid"
    HIGH = "high"


@dataclass(frozen=True)
class SessionView:
    phase: SessionPhase
    connection: ConnectionStatus
    index: int
    length: int
    target: Optional[TargetSpec]
    target_key: Optional[KeySnapshot]
    target_feedback: KeyFeedback
    evaluation_phase: EvalPhase
    stats: RunningStats
    cooldown_remaining_s: Optional[float]

    @property
    def progress_pct(self) -> float:
        if self.length == 0:
            return 0.0
        return min(self.index, self.length) / self.length * 100.0


def classify_key(
    is_target: bool,
    snapshot: Optional[KeySnapshot],
    target_pressure: float,
    tolerance_pct: float,
) -> KeyFeedback:
    """Colour state for one key: only the current target is ever highlighted."""
    if not is_target:
        return KeyFeedback.IDLE
    if snapshot is None or not snapshot.pressed:
        return KeyFeedback.TARGET
    if abs(snapshot.pressure_pct - target_pressure) <= tolerance_pct:
        return KeyFeedback.SUCCESS
    return KeyFeedback.ERROR


def pressure_band(analog_value: float) -> PressureBand:
    if analog_value < LOW_BAND_MAX:
        return PressureBand.LOW
    if analog_value < MID_BAND_MAX:
        return PressureBand.MID
    return PressureBand.HIGH


def describe_outcome(outcome: AttemptOutcome, target: TargetSpec) -> str:
    if outcome.reason is AttemptReason.WRONG_KEY:
        return f"Wrong key! Expected '{target.key}'"
    observed = 0 if outcome.observed_pct is None else round(outcome.observed_pct)
    if outcome.reason is AttemptReason.PERFECT:
        return f"Perfect! Held {observed}% for target {target.target_pressure}%"
    return (
        f"Wrong pressure! Target {target.target_pressure}%, you {observed}% "
        f"(deviation {round(outcome.deviation_pct)}%)"
    )


def build_view(
    state: SessionState,
    rules: EvaluationRules,
    now: float,
    connection: ConnectionStatus,
) -> SessionView:
    target = state.current_target
    active = state.phase is SessionPhase.ACTIVE
    target_key = None if target is None else find_key(state.keys, target.key_code)

    if target is None:
        feedback = KeyFeedback.IDLE
    else:
        feedback = classify_key(active, target_key, target.target_pressure, rules.tolerance_pct)

    cooldown_remaining = None
    evaluation = state.evaluation
    if evaluation.phase is EvalPhase.COOLDOWN and evaluation.cooldown_until is not None:
        reference = state.paused_at if state.paused_at is not None else now
        cooldown_remaining = max(0.0, evaluation.cooldown_until - reference)

    return SessionView(
        phase=state.phase,
        connection=connection,
        index=state.index,
        length=len(state.sequence),
        target=target,
        target_key=target_key,
        target_feedback=feedback,
        evaluation_phase=evaluation.phase,
        stats=state.stats,
        cooldown_remaining_s=cooldown_remaining,
    )


__all__ = [
    "KeyFeedback",
    "PressureBand",
    "SessionView",
    "build_view",
    "classify_key",
    "describe_outcome",
    "pressure_band",
]

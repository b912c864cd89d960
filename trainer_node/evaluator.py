"""Per-attempt evaluation: press detection, dwell gating and cooldown."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Protocol

from .sequence import TargetSpec
from .telemetry import KeySnapshot

LOGGER = logging.getLogger(__name__)

SUCCESS_EPSILON = 1e-9


class EvalPhase(str, Enum):
    IDLE = "idle"
    HOLDING = "holding"
    COOLDOWN = "cooldown"


class AttemptReason(str, Enum):
    PERFECT = "perfect"
    WRONG_PRESSURE = "wrong_pressure"
    WRONG_KEY = "wrong_key"


@dataclass(frozen=True)
class EvaluationRules:
    """Scoring thresholds shared by every attempt."""

    tolerance_pct: float = 10.0
    dwell_s: float = 0.75
    cooldown_s: float = 3.0
    wrong_key_penalty: float = 100.0

    def __post_init__(self) -> None:
        if self.tolerance_pct < 0:
            raise ValueError("tolerance_pct must be non-negative")
        if self.dwell_s < 0:
            raise ValueError("dwell_s must be non-negative")
        if self.cooldown_s < 0:
            raise ValueError("cooldown_s must be non-negative")
        if self.wrong_key_penalty < 0:
            raise ValueError("wrong_key_penalty must be non-negative")


@dataclass(frozen=True)
class AttemptOutcome:
    """Judgement for one completed attempt."""

    deviation_pct: float
    success: bool
    reason: AttemptReason
    observed_pct: Optional[float] = None


@dataclass
class EvaluationState:
    """Mutable state of the attempt for the current target."""

    phase: EvalPhase = EvalPhase.IDLE
    hold_start_s: Optional[float] = None
    peak_value: float = 0.0
    cooldown_until: Optional[float] = None

    def clear(self) -> None:
        self.phase = EvalPhase.IDLE
        self.hold_start_s = None
        self.peak_value = 0.0
        self.cooldown_until = None

    def shift(self, delta_s: float) -> None:
        """Move pending deadlines forward, e.g. across a pause."""
        if self.hold_start_s is not None:
            self.hold_start_s += delta_s
        if self.cooldown_until is not None:
            self.cooldown_until += delta_s


@dataclass(frozen=True)
class Transition:
    previous: EvalPhase
    phase: EvalPhase
    outcome: Optional[AttemptOutcome] = None
    advance: bool = False


class PressurePolicy(Protocol):
    """Decides when a held target key resolves and which pressure counts.

    Both hooks return the observed pressure in percent once the attempt
    should resolve, otherwise ``None``.
    """

    name: str

    def on_pressed(
        self, state: EvaluationState, key: KeySnapshot, now: float, rules: EvaluationRules
    ) -> Optional[float]:
        ...

    def on_released(self, state: EvaluationState, now: float, rules: EvaluationRules) -> Optional[float]:
        ...


class DwellPolicy:
    """Resolve once the target key has been held continuously for the dwell time.

    The pressure sampled on the tick the dwell expires is the one judged.
    """

    name = "dwell"

    def on_pressed(
        self, state: EvaluationState, key: KeySnapshot, now: float, rules: EvaluationRules
    ) -> Optional[float]:
        if state.hold_start_s is None:
            state.hold_start_s = now
        if now - state.hold_start_s >= rules.dwell_s:
            return key.pressure_pct
        return None

    def on_released(self, state: EvaluationState, now: float, rules: EvaluationRules) -> Optional[float]:
        state.hold_start_s = None
        return None


class PeakOnReleasePolicy:
    """Track the deepest press while held and judge it when the key is released."""

    name = "peak"

    def on_pressed(
        self, state: EvaluationState, key: KeySnapshot, now: float, rules: EvaluationRules
    ) -> Optional[float]:
        if state.hold_start_s is None:
            state.hold_start_s = now
        state.peak_value = max(state.peak_value, key.analog_value)
        return None

    def on_released(self, state: EvaluationState, now: float, rules: EvaluationRules) -> Optional[float]:
        peak = state.peak_value
        state.hold_start_s = None
        state.peak_value = 0.0
        return peak * 100.0


POLICIES = {
    DwellPolicy.name: DwellPolicy,
    PeakOnReleasePolicy.name: PeakOnReleasePolicy,
}


def policy_from_name(name: str) -> PressurePolicy:
    try:
        return POLICIES[str(name).strip().lower()]()
    except KeyError as exc:
        raise ValueError(f"Unknown pressure policy {name!r}; expected one of {sorted(POLICIES)}") from exc


def judge(observed_pct: float, target: TargetSpec, rules: EvaluationRules) -> AttemptOutcome:
    """Score an observed pressure against the target."""
    deviation = abs(observed_pct - target.target_pressure)
    success = deviation <= rules.tolerance_pct + SUCCESS_EPSILON
    return AttemptOutcome(
        deviation_pct=deviation,
        success=success,
        reason=AttemptReason.PERFECT if success else AttemptReason.WRONG_PRESSURE,
        observed_pct=observed_pct,
    )


class AttemptEvaluator:
    """State machine for a single target, driven one telemetry tick at a time."""

    def __init__(self, rules: Optional[EvaluationRules] = None, policy: Optional[PressurePolicy] = None) -> None:
        self._rules = rules or EvaluationRules()
        self._policy = policy or DwellPolicy()

    @property
    def rules(self) -> EvaluationRules:
        return self._rules

    @property
    def policy(self) -> PressurePolicy:
        return self._policy

    def tick(
        self,
        state: EvaluationState,
        target: TargetSpec,
        keys: Iterable[KeySnapshot],
        now: float,
    ) -> Transition:
        """Apply the current key set to ``state`` and report what changed."""
        previous = state.phase

        if state.phase is EvalPhase.COOLDOWN:
            # Telemetry is ignored entirely until the deadline passes.
            if state.cooldown_until is not None and now >= state.cooldown_until:
                return Transition(previous=previous, phase=state.phase, advance=True)
            return Transition(previous=previous, phase=state.phase)

        pressed = [key for key in keys if key.pressed]
        decoy = next((key for key in pressed if key.key_code != target.key_code), None)
        if decoy is not None:
            LOGGER.debug("Decoy key %s pressed while waiting for %s", decoy.key_code, target.key)
            outcome = AttemptOutcome(
                deviation_pct=float(self._rules.wrong_key_penalty),
                success=False,
                reason=AttemptReason.WRONG_KEY,
            )
            return self._resolve(state, previous, outcome, now)

        target_key = next((key for key in pressed if key.key_code == target.key_code), None)
        observed: Optional[float] = None
        if target_key is not None:
            state.phase = EvalPhase.HOLDING
            observed = self._policy.on_pressed(state, target_key, now, self._rules)
        elif state.phase is EvalPhase.HOLDING:
            state.phase = EvalPhase.IDLE
            observed = self._policy.on_released(state, now, self._rules)

        if observed is not None:
            return self._resolve(state, previous, judge(observed, target, self._rules), now)
        return Transition(previous=previous, phase=state.phase)

    def _resolve(
        self,
        state: EvaluationState,
        previous: EvalPhase,
        outcome: AttemptOutcome,
        now: float,
    ) -> Transition:
        state.phase = EvalPhase.COOLDOWN
        state.hold_start_s = None
        state.peak_value = 0.0
        state.cooldown_until = now + self._rules.cooldown_s
        return Transition(previous=previous, phase=state.phase, outcome=outcome)


__all__ = [
    "AttemptEvaluator",
    "AttemptOutcome",
    "AttemptReason",
    "DwellPolicy",
    "EvalPhase",
    "EvaluationRules",
    "EvaluationState",
    "PeakOnReleasePolicy",
    "PressurePolicy",
    "Transition",
    "judge",
    "policy_from_name",
]

"""Session lifecycle: start, pause, reset and advancing through the sequence."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Protocol, Sequence

from .evaluator import AttemptEvaluator, AttemptOutcome, EvalPhase
from .feedback import SessionView, build_view, describe_outcome
from .sequence import DEFAULT_SEQUENCE_LENGTH, LEVEL_PRESETS, TargetSpec, generate_sequence, levels_for
from .state import ConnectionStatus, SessionPhase, SessionState
from .stats import RunningStats
from .telemetry import KeySnapshot, find_key

LOGGER = logging.getLogger(__name__)


class FeedLink(Protocol):
    """The part of the telemetry connection the session is allowed to drive."""

    @property
    def status(self) -> ConnectionStatus:
        ...

    def connect(self) -> None:
        ...

    def disconnect(self) -> None:
        ...


class EventKind(str, Enum):
    CONNECTING = "connecting"
    ACTIVATED = "activated"
    PAUSED = "paused"
    ATTEMPT = "attempt"
    ADVANCED = "advanced"
    COMPLETED = "completed"
    RESET = "reset"


@dataclass(frozen=True)
class SessionEvent:
    kind: EventKind
    index: int
    target: Optional[TargetSpec] = None
    outcome: Optional[AttemptOutcome] = None
    stats: Optional[RunningStats] = None


class SessionController:
    """Owns the session state and feeds telemetry ticks to the evaluator."""

    def __init__(
        self,
        link: FeedLink,
        evaluator: Optional[AttemptEvaluator] = None,
        levels: Sequence[int] = LEVEL_PRESETS[3],
        sequence_length: int = DEFAULT_SEQUENCE_LENGTH,
        rng: Optional[random.Random] = None,
    ) -> None:
        if sequence_length < 1:
            raise ValueError("sequence_length must be at least 1")
        self._link = link
        self._evaluator = evaluator or AttemptEvaluator()
        self._sequence_length = int(sequence_length)
        self._rng = rng or random.Random()
        self._state = self._fresh_state(tuple(levels))

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> SessionPhase:
        return self._state.phase

    @property
    def evaluator(self) -> AttemptEvaluator:
        return self._evaluator

    # Commands -----------------------------------------------------------------

    def start(self, now: float) -> List[SessionEvent]:
        """Activate or resume the session once the key feed is connected."""
        st = self._state
        if st.phase is SessionPhase.COMPLETED:
            LOGGER.info("Session already completed; reset before starting again")
            return []
        if st.phase is SessionPhase.ACTIVE:
            return []
        if self._link.status is not ConnectionStatus.CONNECTED:
            st.pending_start = True
            if self._link.status is not ConnectionStatus.CONNECTING:
                self._link.connect()
            LOGGER.info("Waiting for key feed connection before starting")
            return [self._event(EventKind.CONNECTING)]
        return self._activate(now)

    def pause(self, now: float) -> List[SessionEvent]:
        """Freeze evaluation; hold and cooldown timers resume where they stopped."""
        st = self._state
        st.pending_start = False
        if st.phase is not SessionPhase.ACTIVE:
            return []
        st.phase = SessionPhase.PAUSED
        st.paused_at = now
        LOGGER.info("Session paused at target %d/%d", st.index + 1, len(st.sequence))
        return [self._event(EventKind.PAUSED)]

    def reset(self) -> List[SessionEvent]:
        """Regenerate the sequence and discard all progress."""
        keys = self._state.keys
        last_tick_s = self._state.last_tick_s
        self._state = self._fresh_state(self._state.levels)
        # The feed is still live; keep the latest reading and tick ordering.
        self._state.keys = keys
        self._state.last_tick_s = last_tick_s
        LOGGER.info("Session reset with levels %s", list(self._state.levels))
        return [self._event(EventKind.RESET)]

    def regenerate(self, level_count: int) -> List[SessionEvent]:
        """Switch to another pressure level preset and reset."""
        levels = levels_for(level_count)
        self._state.levels = levels
        return self.reset()

    # Telemetry ----------------------------------------------------------------

    def on_link_status(self, status: ConnectionStatus, now: float) -> List[SessionEvent]:
        LOGGER.debug("Key feed status %s", status.value)
        if status is ConnectionStatus.CONNECTED and self._state.pending_start:
            return self._activate(now)
        return []

    def on_snapshots(self, keys: Iterable[KeySnapshot], now: float) -> List[SessionEvent]:
        """Replace the live key set and evaluate it."""
        if not self._accept_tick(now):
            return []
        st = self._state
        st.keys = tuple(keys)
        if st.phase is SessionPhase.PAUSED:
            self._drop_released_hold()
            return []
        return self._evaluate(now)

    def update(self, now: float) -> List[SessionEvent]:
        """Timer tick: re-check dwell and cooldown deadlines against the live key set."""
        if not self._accept_tick(now):
            return []
        return self._evaluate(now)

    def view(self, now: float) -> SessionView:
        return build_view(self._state, self._evaluator.rules, now, self._link.status)

    # Internal helpers -----------------------------------------------------

    def _fresh_state(self, levels: Sequence[int]) -> SessionState:
        return SessionState(
            sequence=generate_sequence(levels, self._rng, length=self._sequence_length),
            levels=tuple(levels),
        )

    def _accept_tick(self, now: float) -> bool:
        st = self._state
        if st.last_tick_s is not None and now < st.last_tick_s:
            LOGGER.debug("Dropping out-of-order tick at %.3f (last %.3f)", now, st.last_tick_s)
            return False
        st.last_tick_s = now
        return True

    def _drop_released_hold(self) -> None:
        """A release while paused ends the hold; pressing again later starts a new one."""
        st = self._state
        target = st.current_target
        if st.evaluation.phase is not EvalPhase.HOLDING or target is None:
            return
        key = find_key(st.keys, target.key_code)
        if key is None or not key.pressed:
            LOGGER.debug("Target '%s' released while paused; hold discarded", target.key)
            st.evaluation.clear()

    def _activate(self, now: float) -> List[SessionEvent]:
        st = self._state
        st.pending_start = False
        if st.phase is SessionPhase.COMPLETED:
            return []
        if st.phase is SessionPhase.PAUSED and st.paused_at is not None:
            st.evaluation.shift(max(0.0, now - st.paused_at))
        st.paused_at = None
        st.phase = SessionPhase.ACTIVE
        LOGGER.info("Session active at target %d/%d", st.index + 1, len(st.sequence))
        return [self._event(EventKind.ACTIVATED)]

    def _evaluate(self, now: float) -> List[SessionEvent]:
        st = self._state
        if st.phase is not SessionPhase.ACTIVE:
            return []
        target = st.current_target
        if target is None:
            return self._complete()

        transition = self._evaluator.tick(st.evaluation, target, st.keys, now)
        events: List[SessionEvent] = []
        if transition.outcome is not None:
            st.stats = st.stats.record(transition.outcome)
            LOGGER.info(
                "Attempt %d/%d: %s (accuracy %.1f%%)",
                st.index + 1,
                len(st.sequence),
                describe_outcome(transition.outcome, target),
                st.stats.accuracy_pct,
            )
            events.append(self._event(EventKind.ATTEMPT, outcome=transition.outcome))
        if transition.advance:
            events.extend(self._advance())
        return events

    def _advance(self) -> List[SessionEvent]:
        st = self._state
        st.index += 1
        st.evaluation.clear()
        if st.index >= len(st.sequence):
            return self._complete()
        return [self._event(EventKind.ADVANCED)]

    def _complete(self) -> List[SessionEvent]:
        st = self._state
        st.phase = SessionPhase.COMPLETED
        LOGGER.info("Test complete! Final accuracy: %d%%", round(st.stats.accuracy_pct))
        return [self._event(EventKind.COMPLETED)]

    def _event(self, kind: EventKind, outcome: Optional[AttemptOutcome] = None) -> SessionEvent:
        st = self._state
        return SessionEvent(
            kind=kind,
            index=st.index,
            target=st.current_target,
            outcome=outcome,
            stats=st.stats,
        )


__all__ = ["EventKind", "FeedLink", "SessionController", "SessionEvent"]

"""Headless session simulations driving the controller with scripted telemetry."""

from __future__ import annotations

import random
from dataclasses import dataclass

import pytest

from trainer_node.evaluator import AttemptReason, EvalPhase
from trainer_node.feedback import KeyFeedback
from trainer_node.session import EventKind, SessionController
from trainer_node.state import ConnectionStatus, SessionPhase
from trainer_node.telemetry import KeySnapshot


@dataclass
class FakeLink:
    status: ConnectionStatus = ConnectionStatus.CONNECTED
    connects: int = 0
    disconnects: int = 0

    def connect(self) -> None:
        self.connects += 1
        self.status = ConnectionStatus.CONNECTING

    def disconnect(self) -> None:
        self.disconnects += 1
        self.status = ConnectionStatus.DISCONNECTED


def make_controller(link: FakeLink | None = None, length: int = 20, seed: int = 11) -> SessionController:
    return SessionController(link or FakeLink(), sequence_length=length, rng=random.Random(seed))


def exact_press(controller: SessionController) -> list[KeySnapshot]:
    target = controller.state.current_target
    return [KeySnapshot(key_code=target.key_code, analog_value=target.target_pressure / 100.0, pressed=True)]


def decoy_press(controller: SessionController) -> list[KeySnapshot]:
    target = controller.state.current_target
    code = 22 if target.key_code != 22 else 4
    return [KeySnapshot(key_code=code, analog_value=0.9, pressed=True)]


def kinds(events) -> list[EventKind]:
    return [event.kind for event in events]


def run_perfect_attempt(controller: SessionController, t: float) -> float:
    """Hold the current target exactly until it resolves; return the resolve time."""
    keys = exact_press(controller)
    controller.on_snapshots(keys, t)
    events = controller.on_snapshots(keys, t + 0.8)
    assert kinds(events) == [EventKind.ATTEMPT]
    return t + 0.8


def test_start_requests_connection_and_defers_activation() -> None:
    link = FakeLink(status=ConnectionStatus.DISCONNECTED)
    controller = make_controller(link)

    events = controller.start(0.0)
    assert kinds(events) == [EventKind.CONNECTING]
    assert link.connects == 1
    assert controller.phase is SessionPhase.NOT_STARTED

    # No evaluation before the link is up.
    assert controller.on_snapshots(decoy_press(controller), 0.5) == []
    assert controller.state.stats.total_attempts == 0

    # A second start while connecting does not reconnect.
    controller.start(0.6)
    assert link.connects == 1

    link.status = ConnectionStatus.CONNECTED
    events = controller.on_link_status(ConnectionStatus.CONNECTED, 1.0)
    assert kinds(events) == [EventKind.ACTIVATED]
    assert controller.phase is SessionPhase.ACTIVE


def test_connected_status_without_pending_start_does_not_activate() -> None:
    controller = make_controller()
    assert controller.on_link_status(ConnectionStatus.CONNECTED, 0.0) == []
    assert controller.phase is SessionPhase.NOT_STARTED


def test_perfect_attempt_then_cooldown_then_advance() -> None:
    controller = make_controller()
    controller.start(0.0)

    resolved_at = run_perfect_attempt(controller, 0.0)
    stats = controller.state.stats
    assert stats.total_attempts == 1
    assert stats.successful_hits == 1
    assert controller.state.evaluation.phase is EvalPhase.COOLDOWN

    # Holding perfectly through the cooldown never resolves a second attempt.
    first_target = controller.state.sequence[0]
    keys = [KeySnapshot(key_code=first_target.key_code, analog_value=first_target.target_pressure / 100.0, pressed=True)]
    for step in range(1, 29):
        assert controller.on_snapshots(keys, resolved_at + step * 0.1) == []
    assert controller.state.index == 0

    events = controller.update(resolved_at + 3.0)
    assert kinds(events) == [EventKind.ADVANCED]
    assert controller.state.index == 1
    assert controller.state.evaluation.phase is EvalPhase.IDLE
    assert events[0].target == controller.state.sequence[1]


def test_wrong_key_is_recorded_immediately() -> None:
    controller = make_controller()
    controller.start(0.0)

    events = controller.on_snapshots(decoy_press(controller), 0.1)
    assert kinds(events) == [EventKind.ATTEMPT]
    assert events[0].outcome.reason is AttemptReason.WRONG_KEY
    assert events[0].outcome.deviation_pct == 100
    assert controller.state.stats.accuracy_pct == 0.0
    assert controller.state.stats.average_deviation_pct == pytest.approx(100.0)


def test_session_completes_after_last_target() -> None:
    controller = make_controller(length=3)
    controller.start(0.0)

    t = 0.0
    seen = []
    for _ in range(3):
        t = run_perfect_attempt(controller, t)
        t += 3.0
        seen.extend(kinds(controller.update(t)))
        controller.on_snapshots([], t + 0.01)
        t += 0.01

    assert seen == [EventKind.ADVANCED, EventKind.ADVANCED, EventKind.COMPLETED]
    assert controller.phase is SessionPhase.COMPLETED
    assert controller.state.stats.total_attempts == 3
    assert controller.state.stats.accuracy_pct == pytest.approx(100.0)

    # Completed sessions ignore start and telemetry until reset.
    assert controller.start(t + 1.0) == []
    assert controller.update(t + 2.0) == []


def test_reset_twice_yields_zeroed_idle_state() -> None:
    controller = make_controller()
    controller.start(0.0)
    run_perfect_attempt(controller, 0.0)

    controller.reset()
    first = controller.state
    controller.reset()
    second = controller.state

    for state in (first, second):
        assert state.phase is SessionPhase.NOT_STARTED
        assert state.index == 0
        assert state.stats.total_attempts == 0
        assert state.stats.accuracy_pct == 0.0
        assert state.stats.average_deviation_pct == 0.0
        assert state.evaluation.phase is EvalPhase.IDLE
        assert state.evaluation.cooldown_until is None
        assert len(state.sequence) == 20


def test_reset_discards_pending_cooldown_advance() -> None:
    controller = make_controller()
    controller.start(0.0)
    resolved_at = run_perfect_attempt(controller, 0.0)
    old_deadline = controller.state.evaluation.cooldown_until

    controller.reset()
    controller.start(resolved_at + 0.1)
    controller.on_snapshots([], resolved_at + 0.2)

    events = controller.update(old_deadline + 0.5)
    assert EventKind.ADVANCED not in kinds(events)
    assert controller.state.index == 0
    assert controller.state.stats.total_attempts == 0


def test_pause_preserves_and_shifts_cooldown() -> None:
    controller = make_controller()
    controller.start(0.0)
    resolved_at = run_perfect_attempt(controller, 0.0)
    deadline = controller.state.evaluation.cooldown_until
    assert deadline == pytest.approx(resolved_at + 3.0)

    assert kinds(controller.pause(1.0)) == [EventKind.PAUSED]
    # Time passes while paused; nothing advances and decoys are not penalised.
    assert controller.update(deadline + 5.0) == []
    assert controller.on_snapshots(decoy_press(controller), deadline + 6.0) == []

    controller.start(11.0)
    assert controller.phase is SessionPhase.ACTIVE
    shifted = controller.state.evaluation.cooldown_until
    assert shifted == pytest.approx(deadline + 10.0)

    assert EventKind.ADVANCED not in kinds(controller.update(shifted - 0.1))
    assert kinds(controller.update(shifted)) == [EventKind.ADVANCED]


def test_pause_preserves_partial_hold() -> None:
    controller = make_controller()
    controller.start(0.0)
    keys = exact_press(controller)

    controller.on_snapshots(keys, 0.0)
    controller.on_snapshots(keys, 0.5)
    controller.pause(0.5)
    # Still held while paused.
    assert controller.on_snapshots(keys, 3.0) == []
    controller.start(10.5)

    # Only 0.5s of the dwell had elapsed before the pause.
    assert controller.on_snapshots(keys, 10.6) == []
    assert kinds(controller.on_snapshots(keys, 10.75)) == [EventKind.ATTEMPT]


def test_release_during_pause_restarts_hold() -> None:
    controller = make_controller()
    controller.start(0.0)
    keys = exact_press(controller)
    released = [KeySnapshot(key_code=keys[0].key_code, analog_value=0.0, pressed=False)]

    controller.on_snapshots(keys, 0.0)
    controller.on_snapshots(keys, 0.5)
    controller.pause(0.5)
    controller.on_snapshots(released, 3.0)
    controller.on_snapshots(keys, 5.0)
    assert controller.state.evaluation.phase is EvalPhase.IDLE
    controller.start(10.5)

    # The dwell counts from the first tick after resuming.
    assert controller.on_snapshots(keys, 10.5) == []
    assert controller.on_snapshots(keys, 11.0) == []
    assert kinds(controller.on_snapshots(keys, 11.25)) == [EventKind.ATTEMPT]


def test_pause_cancels_pending_start() -> None:
    link = FakeLink(status=ConnectionStatus.DISCONNECTED)
    controller = make_controller(link)
    controller.start(0.0)
    controller.pause(0.1)

    link.status = ConnectionStatus.CONNECTED
    assert controller.on_link_status(ConnectionStatus.CONNECTED, 0.2) == []
    assert controller.phase is SessionPhase.NOT_STARTED


def test_out_of_order_tick_is_dropped() -> None:
    controller = make_controller()
    controller.start(0.0)

    controller.on_snapshots([], 5.0)
    assert controller.on_snapshots(decoy_press(controller), 4.0) == []
    assert controller.state.stats.total_attempts == 0
    assert controller.state.keys == ()


def test_regenerate_switches_levels_and_resets() -> None:
    controller = make_controller()
    controller.start(0.0)
    run_perfect_attempt(controller, 0.0)

    events = controller.regenerate(2)
    assert kinds(events) == [EventKind.RESET]
    assert controller.phase is SessionPhase.NOT_STARTED
    assert controller.state.levels == (50, 100)
    assert {t.target_pressure for t in controller.state.sequence} <= {50, 100}
    assert controller.state.stats.total_attempts == 0

    with pytest.raises(ValueError):
        controller.regenerate(5)


def test_view_reports_target_feedback_and_progress() -> None:
    controller = make_controller(length=4)
    view = controller.view(0.0)
    assert view.target_feedback is KeyFeedback.IDLE
    assert view.progress_pct == 0.0

    controller.start(0.0)
    assert controller.view(0.0).target_feedback is KeyFeedback.TARGET

    keys = exact_press(controller)
    controller.on_snapshots(keys, 0.1)
    view = controller.view(0.1)
    assert view.target_feedback is KeyFeedback.SUCCESS
    assert view.evaluation_phase is EvalPhase.HOLDING
    assert view.target_key == keys[0]
    assert view.connection is ConnectionStatus.CONNECTED

    controller.on_snapshots(keys, 0.9)
    view = controller.view(1.9)
    assert view.evaluation_phase is EvalPhase.COOLDOWN
    assert view.cooldown_remaining_s == pytest.approx(2.0)

    controller.update(3.9)
    assert controller.view(3.9).progress_pct == pytest.approx(25.0)

"""Tests for key feedback classification and outcome messages."""

from __future__ import annotations

from trainer_node.evaluator import AttemptOutcome, AttemptReason
from trainer_node.feedback import KeyFeedback, PressureBand, classify_key, describe_outcome, pressure_band
from trainer_node.sequence import TargetSpec
from trainer_node.telemetry import KeySnapshot

TARGET = TargetSpec(key="f", key_code=9, target_pressure=60)


def test_classify_key_states() -> None:
    pressed_ok = KeySnapshot(key_code=9, analog_value=0.65, pressed=True)
    pressed_bad = KeySnapshot(key_code=9, analog_value=0.95, pressed=True)
    released = KeySnapshot(key_code=9, analog_value=0.0, pressed=False)

    assert classify_key(False, pressed_ok, 60, 10) is KeyFeedback.IDLE
    assert classify_key(True, None, 60, 10) is KeyFeedback.TARGET
    assert classify_key(True, released, 60, 10) is KeyFeedback.TARGET
    assert classify_key(True, pressed_ok, 60, 10) is KeyFeedback.SUCCESS
    assert classify_key(True, pressed_bad, 60, 10) is KeyFeedback.ERROR


def test_pressure_band_boundaries() -> None:
    assert pressure_band(0.0) is PressureBand.LOW
    assert pressure_band(0.29) is PressureBand.LOW
    assert pressure_band(0.3) is PressureBand.MID
    assert pressure_band(0.69) is PressureBand.MID
    assert pressure_band(0.7) is PressureBand.HIGH
    assert pressure_band(1.0) is PressureBand.HIGH


def test_describe_outcome_messages() -> None:
    perfect = AttemptOutcome(deviation_pct=1.0, success=True, reason=AttemptReason.PERFECT, observed_pct=61.0)
    wrong_pressure = AttemptOutcome(
        deviation_pct=35.0, success=False, reason=AttemptReason.WRONG_PRESSURE, observed_pct=95.0
    )
    wrong_key = AttemptOutcome(deviation_pct=100.0, success=False, reason=AttemptReason.WRONG_KEY)

    assert describe_outcome(perfect, TARGET).startswith("Perfect!")
    assert "95%" in describe_outcome(wrong_pressure, TARGET)
    assert "deviation 35%" in describe_outcome(wrong_pressure, TARGET)
    assert describe_outcome(wrong_key, TARGET) == "Wrong key! Expected 'f'"

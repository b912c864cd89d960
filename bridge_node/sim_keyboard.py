"""Software stand-in for the analog keyboard behind the bridge."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from itertools import cycle
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

LOGGER = logging.getLogger(__name__)


def _log_event(event: str, **fields: object) -> None:
    LOGGER.info(json.dumps({"event": event, **fields}))


@dataclass(frozen=True)
class KeyReading:
    key_code: int
    analog_value: float
    pressed: bool


@dataclass(frozen=True)
class ScriptStep:
    """Key depths to report for ``duration_s`` seconds."""

    keys: Tuple[Tuple[int, float], ...]
    duration_s: float

    def __post_init__(self) -> None:
        if self.duration_s <= 0:
            raise ValueError("step duration_s must be greater than zero")
        for code, value in self.keys:
            if code < 0:
                raise ValueError(f"key code must be non-negative, got {code}")
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"analog value must be within [0, 1], got {value}")


def parse_script(raw: Iterable[Mapping[str, Any]]) -> List[ScriptStep]:
    steps = []
    for entry in raw:
        keys = entry.get("keys") or {}
        steps.append(
            ScriptStep(
                keys=tuple(sorted((int(code), float(value)) for code, value in keys.items())),
                duration_s=float(entry.get("duration_s", 1.0)),
            )
        )
    return steps


def encode_payload(readings: Iterable[KeyReading]) -> str:
    """Render readings in the ``(code:value:flag)`` wire format."""
    parts = []
    for reading in readings:
        value = f"{reading.analog_value:.4f}".rstrip("0").rstrip(".")
        parts.append(f"({reading.key_code}:{value}:{1 if reading.pressed else 0})")
    return "".join(parts)


class SimKeyboard:
    """Replays a looping script of key presses.

    A key is reported pressed whenever its depth exceeds ``actuation``.
    Keys in ``report_codes`` are always included, released when idle.
    """

    def __init__(
        self,
        script: Optional[Iterable[ScriptStep]] = None,
        report_codes: Iterable[int] = (),
        actuation: float = 0.0,
    ) -> None:
        steps = tuple(script or (ScriptStep(keys=(), duration_s=1.0),))
        if not steps:
            raise ValueError("script must contain at least one step")
        self._steps = cycle(steps)
        self._report_codes = tuple(sorted(set(int(code) for code in report_codes)))
        self._actuation = float(actuation)
        self._current: Optional[ScriptStep] = None
        self._step_ends_at = 0.0
        _log_event("sim_keyboard_started", steps=len(steps), report_codes=list(self._report_codes))

    def read(self, now: float) -> List[KeyReading]:
        """Return the readings for time ``now`` (monotonic seconds)."""
        if self._current is None:
            self._current = next(self._steps)
            self._step_ends_at = now + self._current.duration_s
        while now >= self._step_ends_at:
            self._current = next(self._steps)
            self._step_ends_at += self._current.duration_s

        depths: Dict[int, float] = {code: 0.0 for code in self._report_codes}
        depths.update(dict(self._current.keys))
        return [
            KeyReading(key_code=code, analog_value=value, pressed=value > self._actuation)
            for code, value in sorted(depths.items())
        ]

    def close(self) -> None:
        _log_event("sim_keyboard_stopped")


__all__ = ["KeyReading", "ScriptStep", "SimKeyboard", "encode_payload", "parse_script"]

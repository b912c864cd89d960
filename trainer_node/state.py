"""Dataclasses modelling session and connection state."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .evaluator import EvaluationState
from .sequence import TargetSpec
from .stats import RunningStats
from .telemetry import KeySet


class ConnectionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class SessionPhase(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass(frozen=True)
class KeyFrame:
    """One accepted telemetry message."""

    keys: KeySet
    seq: Optional[int]
    received_at: float


@dataclass
class SessionState:
    """Everything the controller mutates, owned in one place."""

    sequence: Tuple[TargetSpec, ...]
    levels: Tuple[int, ...]
    phase: SessionPhase = SessionPhase.NOT_STARTED
    index: int = 0
    evaluation: EvaluationState = field(default_factory=EvaluationState)
    stats: RunningStats = field(default_factory=RunningStats)
    keys: KeySet = ()
    last_tick_s: Optional[float] = None
    paused_at: Optional[float] = None
    pending_start: bool = False

    @property
    def current_target(self) -> Optional[TargetSpec]:
        if 0 <= self.index < len(self.sequence):
            return self.sequence[self.index]
        return None

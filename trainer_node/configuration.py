"""Configuration loading and dataclasses for the trainer node."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Tuple

import yaml

from .evaluator import EvaluationRules, policy_from_name
from .sequence import DEFAULT_SEQUENCE_LENGTH, levels_for


@dataclass(frozen=True)
class OscConfig:
    host: str
    port: int


@dataclass(frozen=True)
class ClientConfig:
    retry_s: float = 3.0
    watchdog_s: float = 2.0

    def __post_init__(self) -> None:
        if self.retry_s <= 0:
            raise ValueError("client.retry_s must be greater than zero")
        if self.watchdog_s <= 0:
            raise ValueError("client.watchdog_s must be greater than zero")


@dataclass(frozen=True)
class LoopConfig:
    tick_hz: float = 100.0

    def __post_init__(self) -> None:
        if self.tick_hz <= 0:
            raise ValueError("loop.tick_hz must be greater than zero")


@dataclass(frozen=True)
class TrainerConfig:
    level_count: int = 3
    sequence_length: int = DEFAULT_SEQUENCE_LENGTH
    policy: str = "dwell"
    rules: EvaluationRules = field(default_factory=EvaluationRules)

    def __post_init__(self) -> None:
        levels_for(self.level_count)
        policy_from_name(self.policy)
        if self.sequence_length < 1:
            raise ValueError("trainer.sequence_length must be at least 1")

    @property
    def levels(self) -> Tuple[int, ...]:
        return levels_for(self.level_count)


@dataclass(frozen=True)
class LoggingConfig:
    level: str


@dataclass(frozen=True)
class AppConfig:
    osc: OscConfig
    client: ClientConfig
    loop: LoopConfig
    trainer: TrainerConfig
    logging: LoggingConfig


def load_config(path: Path) -> AppConfig:
    """Load configuration from a YAML file."""
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    return parse_config(raw)


def parse_config(raw: Any) -> AppConfig:
    if not isinstance(raw, dict):
        raise ValueError("Configuration root must be a mapping")
    try:
        osc = OscConfig(host=str(raw["osc"]["host"]), port=int(raw["osc"]["port"]))
    except KeyError as exc:
        raise KeyError(f"Configuration missing osc key: {exc}") from exc

    return AppConfig(
        osc=osc,
        client=_parse_client(raw.get("client", {})),
        loop=LoopConfig(tick_hz=float(_section(raw, "loop").get("tick_hz", 100.0))),
        trainer=_parse_trainer(raw.get("trainer", {})),
        logging=LoggingConfig(level=str(_section(raw, "logging").get("level", "INFO"))),
    )


def _section(raw: Any, name: str) -> dict:
    value = raw.get(name, {})
    return value if isinstance(value, dict) else {}


def _parse_client(raw: Any) -> ClientConfig:
    if not isinstance(raw, dict):
        raw = {}
    return ClientConfig(
        retry_s=float(raw.get("retry_s", 3.0)),
        watchdog_s=float(raw.get("watchdog_s", 2.0)),
    )


def _parse_trainer(raw: Any) -> TrainerConfig:
    if not isinstance(raw, dict):
        raw = {}
    return TrainerConfig(
        level_count=int(raw.get("level_count", 3)),
        sequence_length=int(raw.get("sequence_length", DEFAULT_SEQUENCE_LENGTH)),
        policy=str(raw.get("policy", "dwell")),
        rules=EvaluationRules(
            tolerance_pct=float(raw.get("tolerance_pct", 10.0)),
            dwell_s=float(raw.get("dwell_s", 0.75)),
            cooldown_s=float(raw.get("cooldown_s", 3.0)),
            wrong_key_penalty=float(raw.get("wrong_key_penalty", 100.0)),
        ),
    )


def load_default_config() -> AppConfig:
    """Load the default config.yaml shipped with the package."""
    path = Path(__file__).resolve().parent / "config.yaml"
    return load_config(path)


__all__ = [
    "AppConfig",
    "ClientConfig",
    "LoggingConfig",
    "LoopConfig",
    "OscConfig",
    "TrainerConfig",
    "load_config",
    "load_default_config",
    "parse_config",
]

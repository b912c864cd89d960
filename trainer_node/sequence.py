"""Randomised pressure-target sequences over the home-row practice keys."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Protocol, Sequence, Tuple, TypeVar

DEFAULT_SEQUENCE_LENGTH = 20

T = TypeVar("T")


@dataclass(frozen=True)
class PracticeKey:
    key: str
    key_code: int


@dataclass(frozen=True)
class TargetSpec:
    """A single key to press and the pressure (percent) to hold it at."""

    key: str
    key_code: int
    target_pressure: int


HOME_ROW_KEYS: Tuple[PracticeKey, ...] = (
    PracticeKey("a", 4),
    PracticeKey("s", 22),
    PracticeKey("d", 7),
    PracticeKey("f", 9),
    PracticeKey("j", 13),
    PracticeKey("k", 14),
    PracticeKey("l", 15),
)

LEVEL_PRESETS: Dict[int, Tuple[int, ...]] = {
    2: (50, 100),
    3: (30, 60, 100),
}


class ChoiceRng(Protocol):
    """Subset of ``random.Random`` used by the generator."""

    def choice(self, seq: Sequence[T]) -> T:
        ...


def levels_for(level_count: int) -> Tuple[int, ...]:
    """Return the pressure levels for a supported level count."""
    try:
        return LEVEL_PRESETS[int(level_count)]
    except KeyError as exc:
        supported = ", ".join(str(count) for count in sorted(LEVEL_PRESETS))
        raise ValueError(f"Unsupported level count {level_count}; expected one of {supported}") from exc


def generate_sequence(
    levels: Sequence[int],
    rng: ChoiceRng,
    length: int = DEFAULT_SEQUENCE_LENGTH,
    keys: Sequence[PracticeKey] = HOME_ROW_KEYS,
) -> Tuple[TargetSpec, ...]:
    """Draw ``length`` independent (key, level) targets.

    Keys and levels are picked uniformly and independently, so repeats are
    expected. Each call starts a new sequence rather than continuing one.
    """
    if length < 1:
        raise ValueError("length must be at least 1")
    if not levels:
        raise ValueError("levels must not be empty")
    if not keys:
        raise ValueError("keys must not be empty")

    level_pool = tuple(int(level) for level in levels)
    key_pool = tuple(keys)
    targets = []
    for _ in range(length):
        practice_key = rng.choice(key_pool)
        targets.append(
            TargetSpec(
                key=practice_key.key,
                key_code=practice_key.key_code,
                target_pressure=rng.choice(level_pool),
            )
        )
    return tuple(targets)


__all__ = [
    "DEFAULT_SEQUENCE_LENGTH",
    "HOME_ROW_KEYS",
    "LEVEL_PRESETS",
    "PracticeKey",
    "TargetSpec",
    "generate_sequence",
    "levels_for",
]

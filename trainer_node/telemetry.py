"""Decoding of the analog keyboard telemetry wire format."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

LOGGER = logging.getLogger(__name__)

# One group per key: (<keyCode>:<analogValue>:<pressedFlag>)
GROUP_RE = re.compile(r"\((\d+):([^:()]*):(\d+)\)")
ANALOG_RE = re.compile(r"^(?:\d+(?:\.\d*)?|\.\d+)$")


@dataclass(frozen=True)
class KeySnapshot:
    """Live reading for a single key."""

    key_code: int
    analog_value: float
    pressed: bool

    @property
    def pressure_pct(self) -> float:
        return self.analog_value * 100.0


KeySet = Tuple[KeySnapshot, ...]


def decode_payload(payload: object) -> KeySet:
    """Decode a raw telemetry message into key snapshots.

    Malformed groups are skipped. A payload without any valid group decodes
    to an empty tuple, which callers treat as "no keys pressed".
    """
    if not isinstance(payload, str):
        LOGGER.debug("Ignoring non-text telemetry payload: %r", payload)
        return ()

    keys = []
    for match in GROUP_RE.finditer(payload):
        code_raw, value_raw, flag_raw = match.groups()
        value_raw = value_raw.strip()
        if not ANALOG_RE.match(value_raw):
            LOGGER.debug("Skipping group with bad analog value: %s", match.group(0))
            continue
        value = float(value_raw)
        if not 0.0 <= value <= 1.0:
            LOGGER.debug("Skipping group with out-of-range analog value: %s", match.group(0))
            continue
        keys.append(KeySnapshot(key_code=int(code_raw), analog_value=value, pressed=int(flag_raw) == 1))
    return tuple(keys)


def encode_snapshots(keys: Iterable[KeySnapshot]) -> str:
    """Render snapshots back into the wire format."""
    return "".join(
        f"({key.key_code}:{_format_analog(key.analog_value)}:{1 if key.pressed else 0})"
        for key in keys
    )


def _format_analog(value: float) -> str:
    # Fixed-point only; the decoder rejects exponent notation.
    return f"{value:.4f}".rstrip("0").rstrip(".")


def find_key(keys: Iterable[KeySnapshot], key_code: int) -> Optional[KeySnapshot]:
    for key in keys:
        if key.key_code == key_code:
            return key
    return None


__all__ = ["KeySet", "KeySnapshot", "decode_payload", "encode_snapshots", "find_key"]

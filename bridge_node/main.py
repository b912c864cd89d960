"""Main entry-point for the simulated keyboard bridge."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import yaml

from .osc_sender import TelemetrySender
from .sim_keyboard import SimKeyboard, encode_payload, parse_script

LOGGER = logging.getLogger(__name__)
DEFAULT_CONFIG = Path(__file__).resolve().with_name("config.yaml")


def _log_event(event: str, **fields: object) -> None:
    LOGGER.info(json.dumps({"event": event, **fields}))


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulated analog keyboard bridge streaming key telemetry over OSC."
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration YAML (defaults to bridge_node/config.yaml).",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def load_config(path: Optional[Path]) -> Dict[str, Any]:
    config_path = path or DEFAULT_CONFIG
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    return raw


def _deep_update(base: Dict[str, Any], updates: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in updates.items():
        if (
            isinstance(value, dict)
            and key in base
            and isinstance(base[key], dict)
        ):
            _deep_update(base[key], value)
        else:
            base[key] = value
    return base


def _with_defaults(raw: Dict[str, Any]) -> Dict[str, Any]:
    defaults: Dict[str, Any] = {
        "cycle_hz": 60.0,
        "osc": {"trainer_ip": "127.0.0.1", "port": 32312, "queue_size": 64},
        "keyboard": {
            "report_codes": [4, 22, 7, 9, 13, 14, 15],
            "actuation": 0.0,
            "script": [{"keys": {}, "duration_s": 1.0}],
        },
        "logging": {"level": "INFO"},
        "print_payload": False,
    }
    return _deep_update(defaults, raw)


def _install_signal_handlers(stop_flag: Dict[str, bool]) -> None:
    def handler(signum: int, _frame: object) -> None:
        _log_event("signal_received", signal=signum)
        stop_flag["stop"] = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            signal.signal(sig, handler)
        except ValueError:  # pragma: no cover - not available on all platforms
            continue


def run(config: Dict[str, Any]) -> None:
    stop_flag = {"stop": False}
    _install_signal_handlers(stop_flag)

    osc_cfg = config["osc"]
    keyboard_cfg = config["keyboard"]

    cycle_hz = float(config["cycle_hz"])
    if cycle_hz <= 0.0:
        raise ValueError("cycle_hz must be greater than zero")

    keyboard = SimKeyboard(
        parse_script(keyboard_cfg.get("script") or []),
        report_codes=keyboard_cfg.get("report_codes", []),
        actuation=float(keyboard_cfg.get("actuation", 0.0)),
    )
    link = TelemetrySender(osc_cfg["trainer_ip"], int(osc_cfg["port"]), osc_cfg.get("queue_size", 64))

    _log_event("bridge_started", cycle_hz=cycle_hz, port=int(osc_cfg["port"]))
    try:
        _run_loop(
            link=link,
            keyboard=keyboard,
            cycle_hz=cycle_hz,
            print_payload=bool(config.get("print_payload", False)),
            stop_flag=stop_flag,
        )
    finally:
        keyboard.close()
        link.close()
        _log_event("bridge_stopped")


def _run_loop(
    *,
    link: TelemetrySender,
    keyboard: SimKeyboard,
    cycle_hz: float,
    print_payload: bool,
    stop_flag: Dict[str, bool],
) -> None:
    period = 1.0 / cycle_hz
    next_tick = time.monotonic()
    # Heartbeat 1 precedes the first key frame so a restart resets the trainer's frame order.
    next_alive = next_tick
    alive_seq = 0

    while not stop_flag["stop"]:
        now = time.monotonic()
        sleep_time = next_tick - now
        if sleep_time > 0:
            time.sleep(sleep_time)
        now = time.monotonic()
        next_tick += period

        while now >= next_alive:
            alive_seq += 1
            link.send_alive(alive_seq)
            next_alive += 1.0

        payload = encode_payload(keyboard.read(now))
        link.send_keys(payload)
        if print_payload:
            print(payload)


def main(argv: Optional[Iterable[str]] = None) -> None:
    args = parse_args(argv)
    raw_config = load_config(args.config)
    config = _with_defaults(raw_config)

    logging_level = getattr(
        logging, str(config["logging"].get("level", "INFO")).upper(), logging.INFO
    )
    logging.basicConfig(level=logging_level, format="%(message)s")

    try:
        run(config)
    except KeyboardInterrupt:
        _log_event("keyboard_interrupt")
    except Exception as exc:  # pragma: no cover - top-level guard
        _log_event("fatal_error", error=str(exc))
        raise


if __name__ == "__main__":
    main(sys.argv[1:])

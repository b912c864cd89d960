"""Entrypoint for the trainer node asyncio application."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
from dataclasses import replace
from pathlib import Path
from time import perf_counter
from typing import Callable, Iterable, List, Optional

from .configuration import AppConfig, load_config, load_default_config
from .evaluator import AttemptEvaluator, policy_from_name
from .feedback import SessionView, pressure_band
from .key_client import KeyFeedClient
from .session import EventKind, SessionController, SessionEvent

LOGGER = logging.getLogger(__name__)

STATUS_LOG_INTERVAL_S = 1.0


def parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analog keyboard pressure precision trainer.")
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to configuration YAML. Defaults to bundled config.yaml if omitted.",
    )
    parser.add_argument(
        "--levels",
        type=int,
        choices=(2, 3),
        help="Number of pressure levels (2: 50/100, 3: 30/60/100). Overrides the config.",
    )
    parser.add_argument(
        "--policy",
        choices=("dwell", "peak"),
        help="Pressure evaluation policy. Overrides the config.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def apply_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    trainer = config.trainer
    if args.levels is not None:
        trainer = replace(trainer, level_count=args.levels)
    if args.policy is not None:
        trainer = replace(trainer, policy=args.policy)
    return replace(config, trainer=trainer)


def build_controller(config: AppConfig, client: KeyFeedClient) -> SessionController:
    trainer = config.trainer
    evaluator = AttemptEvaluator(trainer.rules, policy_from_name(trainer.policy))
    return SessionController(
        client,
        evaluator,
        levels=trainer.levels,
        sequence_length=trainer.sequence_length,
    )


class EventReporter:
    """Logs session events and signals completion."""

    def __init__(self, controller: SessionController) -> None:
        self._controller = controller
        self.finished = asyncio.Event()

    def __call__(self, events: List[SessionEvent]) -> None:
        for event in events:
            if event.kind in (EventKind.ACTIVATED, EventKind.ADVANCED) and event.target is not None:
                LOGGER.info(
                    "Target %d/%d: press '%s' at %d%%",
                    event.index + 1,
                    len(self._controller.state.sequence),
                    event.target.key,
                    event.target.target_pressure,
                )
            elif event.kind is EventKind.CONNECTING:
                LOGGER.info("Connecting to the keyboard bridge...")
            elif event.kind is EventKind.COMPLETED:
                self.finished.set()


def log_live_target(view: SessionView) -> None:
    if view.target is None or view.target_key is None:
        return
    LOGGER.debug(
        "Live '%s': %.0f%% (%s) target %d%% -> %s",
        view.target.key,
        view.target_key.pressure_pct,
        pressure_band(view.target_key.analog_value).value,
        view.target.target_pressure,
        view.target_feedback.value,
    )


def service_watchdog(
    controller: SessionController,
    client: KeyFeedClient,
    watchdog_s: float,
    report: Callable[[List[SessionEvent]], None],
    now: float,
) -> bool:
    """Release every key once when the bridge goes quiet.

    The client reports the outage as CONNECTING and logs when telemetry resumes.
    """
    if not client.check_watchdog(now, watchdog_s):
        return False
    LOGGER.warning("No key telemetry for %.1fs; treating all keys as released", watchdog_s)
    report(controller.on_snapshots((), now))
    return True


async def trainer_loop(
    controller: SessionController,
    client: KeyFeedClient,
    app_config: AppConfig,
    report: EventReporter,
) -> None:
    """Run the fixed-rate deadline loop until cancelled."""
    tick_interval = 1.0 / app_config.loop.tick_hz
    watchdog_s = app_config.client.watchdog_s
    next_tick = perf_counter()
    next_status = next_tick
    try:
        while True:
            next_tick += tick_interval
            now = perf_counter()
            service_watchdog(controller, client, watchdog_s, report, now)
            report(controller.update(now))
            if now >= next_status:
                log_live_target(controller.view(now))
                next_status = now + STATUS_LOG_INTERVAL_S

            sleep_time = max(0.0, next_tick - perf_counter())
            if sleep_time:
                await asyncio.sleep(sleep_time)
    except asyncio.CancelledError:
        LOGGER.info("Trainer loop cancelled")
        raise


async def async_main(args: argparse.Namespace) -> None:
    config = load_config(args.config) if args.config else load_default_config()
    config = apply_overrides(config, args)
    logging.basicConfig(level=getattr(logging, config.logging.level.upper(), logging.INFO))

    client = KeyFeedClient(
        config.osc.host,
        config.osc.port,
        retry_s=config.client.retry_s,
        loop=asyncio.get_running_loop(),
    )
    controller = build_controller(config, client)
    report = EventReporter(controller)
    client.subscribe(lambda frame: report(controller.on_snapshots(frame.keys, frame.received_at)))
    client.add_status_listener(lambda status: report(controller.on_link_status(status, perf_counter())))

    loop_task: asyncio.Task[None] | None = None
    try:
        report(controller.start(perf_counter()))
        loop_task = asyncio.create_task(trainer_loop(controller, client, config, report))
        await report.finished.wait()
        stats = controller.state.stats
        LOGGER.info(
            "Hits %d/%d, average deviation %.1f%%",
            stats.successful_hits,
            stats.total_attempts,
            stats.average_deviation_pct,
        )
    finally:
        if loop_task is not None:
            loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await loop_task
        await client.stop()


def main(argv: Optional[Iterable[str]] = None) -> None:
    args = parse_args(argv)
    try:
        asyncio.run(async_main(args))
    except KeyboardInterrupt:
        LOGGER.info("Interrupted by user")


if __name__ == "__main__":
    main()

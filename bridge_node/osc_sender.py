"""Background OSC link from the bridge to the trainer."""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from typing import Deque, Optional, Tuple

from pythonosc.udp_client import SimpleUDPClient

LOGGER = logging.getLogger(__name__)

KEYS_ADDRESS = "/keys"
ALIVE_ADDRESS = "/alive"


def _log_event(event: str, **fields: object) -> None:
    LOGGER.info(json.dumps({"event": event, **fields}))


class TelemetrySender:
    """Ships key frames and heartbeats to the trainer from a worker thread.

    A key frame is a full snapshot of the keyboard, so a frame still waiting
    when a newer one is handed in gets replaced instead of queued. Heartbeats
    queue up to ``queue_size`` and are dropped beyond that.
    """

    def __init__(self, host: str, port: int, queue_size: int = 64) -> None:
        self._client = SimpleUDPClient(host, port)
        self._heartbeat_limit = max(1, int(queue_size))
        self._heartbeats: Deque[int] = deque()
        self._pending_frame: Optional[Tuple[int, str]] = None
        self._frame_seq = 0
        self._superseded = 0
        self._cond = threading.Condition()
        self._closed = False
        self._worker = threading.Thread(target=self._drain, name="bridge-tx", daemon=True)
        self._worker.start()
        _log_event("telemetry_link_open", host=host, port=port)

    @property
    def superseded(self) -> int:
        """Key frames replaced by a newer one before they went out."""
        with self._cond:
            return self._superseded

    def send_keys(self, payload: str) -> int:
        """Hand over the newest key frame; returns its sequence number."""
        with self._cond:
            self._frame_seq += 1
            if self._closed:
                return self._frame_seq
            if self._pending_frame is not None:
                self._superseded += 1
            self._pending_frame = (self._frame_seq, str(payload))
            self._cond.notify()
            return self._frame_seq

    def send_alive(self, count: int) -> None:
        with self._cond:
            if self._closed:
                return
            if len(self._heartbeats) >= self._heartbeat_limit:
                _log_event("heartbeat_dropped", count=int(count))
                return
            self._heartbeats.append(int(count))
            self._cond.notify()

    def close(self) -> None:
        """Flush what is pending and stop the worker."""
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()
        self._worker.join(timeout=1.0)
        _log_event("telemetry_link_closed", superseded=self._superseded)

    def _next_message(self) -> Optional[Tuple[str, list]]:
        with self._cond:
            while not (self._heartbeats or self._pending_frame or self._closed):
                self._cond.wait()
            if self._heartbeats:
                return ALIVE_ADDRESS, [self._heartbeats.popleft()]
            if self._pending_frame is not None:
                seq, payload = self._pending_frame
                self._pending_frame = None
                return KEYS_ADDRESS, [seq, payload]
            return None

    def _drain(self) -> None:
        while True:
            message = self._next_message()
            if message is None:
                return
            address, args = message
            try:
                self._client.send_message(address, args)
            except OSError as exc:
                _log_event("telemetry_send_failed", address=address, error=str(exc))


__all__ = ["ALIVE_ADDRESS", "KEYS_ADDRESS", "TelemetrySender"]

"""OSC client that receives key telemetry from the hardware bridge."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Callable, List, Optional, Tuple

from pythonosc import dispatcher
from pythonosc.osc_server import AsyncIOOSCUDPServer

from .state import ConnectionStatus, KeyFrame
from .telemetry import KeySet, decode_payload

LOGGER = logging.getLogger(__name__)

KEYS_ADDRESS = "/keys"
ALIVE_ADDRESS = "/alive"
DEFAULT_RETRY_S = 3.0
# A sequence number this far behind the last one means the bridge restarted.
SEQ_RESTART_GAP = 1000

FrameCallback = Callable[[KeyFrame], None]
StatusCallback = Callable[[ConnectionStatus], None]


@dataclass
class _KeyBuffer:
    keys: KeySet = ()
    last_seq: Optional[int] = None
    last_alive_seq: Optional[int] = None
    last_rx_ts: float = field(default_factory=perf_counter)

    def accept(self, keys: KeySet, seq: Optional[int]) -> Optional[KeyFrame]:
        if seq is not None and self.last_seq is not None and seq <= self.last_seq:
            if self.last_seq - seq < SEQ_RESTART_GAP:
                return None
        if seq is not None:
            self.last_seq = seq
        self.keys = keys
        self.last_rx_ts = perf_counter()
        return KeyFrame(keys=keys, seq=seq, received_at=self.last_rx_ts)

    def touch(self, alive_seq: Optional[int] = None) -> bool:
        """Refresh the receive time.

        A heartbeat count lower than the last one means the bridge restarted, so
        frame ordering starts over. Returns True in that case.
        """
        self.last_rx_ts = perf_counter()
        if alive_seq is None:
            return False
        restarted = self.last_alive_seq is not None and alive_seq < self.last_alive_seq
        if restarted:
            self.last_seq = None
        self.last_alive_seq = alive_seq
        return restarted

    def forget_order(self) -> None:
        self.last_seq = None
        self.last_alive_seq = None

    def clear(self) -> None:
        self.keys = ()
        self.forget_order()


class KeyFeedClient:
    """Listens for ``/keys`` OSC messages and publishes decoded key sets.

    ``connect`` keeps retrying with a fixed backoff until ``disconnect`` is
    called. Status is CONNECTED only while the bridge is actually sending: a
    bound but silent endpoint reports CONNECTING, and ``check_watchdog`` drops
    back to CONNECTING when telemetry stops.
    """

    def __init__(
        self,
        host: str,
        port: int,
        retry_s: float = DEFAULT_RETRY_S,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        if retry_s <= 0:
            raise ValueError("retry_s must be greater than zero")
        self._loop = loop or asyncio.get_event_loop()
        self._address = (host, port)
        self._retry_s = float(retry_s)
        self._buffer = _KeyBuffer()
        self._dispatcher = dispatcher.Dispatcher()
        self._dispatcher.map(KEYS_ADDRESS, self._on_keys)
        self._dispatcher.map(ALIVE_ADDRESS, self._on_alive)
        self._server = AsyncIOOSCUDPServer(self._address, self._dispatcher, self._loop)
        self._transport: Optional[asyncio.BaseTransport] = None
        self._protocol = None
        self._status = ConnectionStatus.DISCONNECTED
        self._wanted = False
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._open_task: Optional[asyncio.Task] = None
        self._frame_callbacks: List[FrameCallback] = []
        self._status_callbacks: List[StatusCallback] = []

    @property
    def address(self) -> Tuple[str, int]:
        """Return the configured OSC address tuple."""
        return self._address

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def keys(self) -> KeySet:
        """Latest decoded key set."""
        return self._buffer.keys

    @property
    def retry_pending(self) -> bool:
        return self._retry_handle is not None

    @property
    def last_rx_ts(self) -> float:
        return self._buffer.last_rx_ts

    def subscribe(self, callback: FrameCallback) -> None:
        self._frame_callbacks.append(callback)

    def add_status_listener(self, callback: StatusCallback) -> None:
        self._status_callbacks.append(callback)

    def connect(self) -> None:
        """Request the endpoint; failures are retried until ``disconnect``."""
        self._wanted = True
        if self._transport is not None or self._status is ConnectionStatus.CONNECTING:
            return
        self._cancel_retry()
        self._set_status(ConnectionStatus.CONNECTING)
        self._open_task = self._loop.create_task(self._open())

    def disconnect(self) -> None:
        """Stop listening and cancel any pending reconnect."""
        self._wanted = False
        self._cancel_retry()
        if self._open_task is not None and not self._open_task.done():
            self._open_task.cancel()
        self._open_task = None
        if self._transport is not None:
            self._transport.close()
        self._transport = None
        self._protocol = None
        self._buffer.clear()
        self._set_status(ConnectionStatus.DISCONNECTED)

    async def start(self) -> None:
        """Connect and wait for the first attempt to finish."""
        self.connect()
        if self._open_task is not None:
            await asyncio.shield(self._open_task)

    async def stop(self) -> None:
        self.disconnect()

    def is_stale(self, now: float, watchdog_s: float) -> bool:
        """True when nothing has arrived from the bridge for ``watchdog_s``."""
        return now - self._buffer.last_rx_ts >= watchdog_s

    def check_watchdog(self, now: float, watchdog_s: float) -> bool:
        """Demote a silent live feed to CONNECTING; True on the call that trips."""
        if self._status is not ConnectionStatus.CONNECTED or not self.is_stale(now, watchdog_s):
            return False
        # Whatever comes next may be a restarted bridge counting from 1 again.
        self._buffer.forget_order()
        self._set_status(ConnectionStatus.CONNECTING)
        return True

    def inject_payload(self, payload: str, seq: Optional[int] = None) -> Optional[KeyFrame]:
        """Testing helper to feed a raw telemetry payload."""
        return self._publish(decode_payload(payload), seq)

    # Connection ---------------------------------------------------------------

    async def _open(self) -> None:
        try:
            self._transport, self._protocol = await self._server.create_serve_endpoint()
        except OSError as exc:
            LOGGER.warning("Key feed failed to listen on %s:%s: %s", *self.address, exc)
            self._transport = None
            self._set_status(ConnectionStatus.ERROR)
            self._schedule_retry()
            return
        if not self._wanted:
            # disconnect() arrived while the endpoint was opening.
            self._transport.close()
            self._transport = None
            return
        self._buffer.touch()
        LOGGER.info("Key feed listening on %s:%s; waiting for the bridge", *self.address)

    def _schedule_retry(self) -> None:
        if not self._wanted:
            return
        self._cancel_retry()
        LOGGER.info("Retrying key feed in %.1fs", self._retry_s)
        self._retry_handle = self._loop.call_later(self._retry_s, self._retry)

    def _retry(self) -> None:
        self._retry_handle = None
        if self._wanted and self._transport is None:
            self.connect()

    def _cancel_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None

    def _set_status(self, status: ConnectionStatus) -> None:
        if status is self._status:
            return
        self._status = status
        for callback in list(self._status_callbacks):
            callback(status)

    # Handlers -----------------------------------------------------------------

    def _on_keys(self, _addr: str, *args: object) -> None:
        if len(args) == 1:
            seq_raw, payload = None, args[0]
        elif len(args) == 2:
            seq_raw, payload = args
        else:
            LOGGER.debug("Ignoring /keys message with %d arguments", len(args))
            return

        seq: Optional[int] = None
        if seq_raw is not None:
            try:
                seq = int(seq_raw)
            except (TypeError, ValueError):
                LOGGER.debug("Ignoring non-int sequence number: %s", seq_raw)
                return
        self._publish(decode_payload(payload), seq)

    def _on_alive(self, _addr: str, *args: object) -> None:
        alive_seq: Optional[int] = None
        if args:
            try:
                alive_seq = int(args[0])
            except (TypeError, ValueError):
                LOGGER.debug("Ignoring non-int heartbeat count: %s", args[0])
        if self._buffer.touch(alive_seq):
            LOGGER.info("Bridge heartbeat restarted at %d; resetting frame order", alive_seq)
        self._mark_live()

    def _publish(self, keys: KeySet, seq: Optional[int]) -> Optional[KeyFrame]:
        frame = self._buffer.accept(keys, seq)
        if frame is None:
            LOGGER.debug("Dropping stale key frame seq=%s (last %s)", seq, self._buffer.last_seq)
            return None
        self._mark_live()
        for callback in list(self._frame_callbacks):
            callback(frame)
        return frame

    def _mark_live(self) -> None:
        if self._transport is None or self._status is not ConnectionStatus.CONNECTING:
            return
        LOGGER.info("Key telemetry arriving from the bridge")
        self._set_status(ConnectionStatus.CONNECTED)


__all__ = ["KeyFeedClient", "KEYS_ADDRESS", "ALIVE_ADDRESS"]

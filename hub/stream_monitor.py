"""
Stream-first monitor with polling fallback.

Both hub monitors share the same two-mode state machine:

    IDLE --start()--> (connect) --2xx--> STREAMING
    STREAMING --stream error--> POLLING (poll now, then every interval;
                                         retry the stream every reconnect interval)
    STREAMING --remote close--> (reconnect at once; failure -> POLLING)
    POLLING --stream reconnected--> STREAMING (poll + reconnect timers cancelled)
    any --stop()--> STOPPED (terminal)

Subclasses provide the stream URL, the poll timers, and how to apply a
decoded event. All state changes happen under one re-entrant lock; network
calls and timer cancellation happen outside it.
"""

import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

from hub import config
from hub.models import MonitorMode, decode_stream_event
from shared.errors import ProtocolError, Unauthenticated
from shared.periodic import PeriodicTimer
from shared.sse_client import EventStreamClient, StreamEvent, StreamHandle

logger = logging.getLogger(__name__)

# (interval seconds, callback, thread name)
PollSpec = Tuple[float, Callable[[], None], str]

# A stream that closes sooner than this after connecting counts as a failure
MIN_STREAM_LIFETIME = 1.0


class StreamingMonitor:
    label = "monitor"

    def __init__(
        self,
        stream_client: Optional[EventStreamClient],
        token_provider: Callable[[], Optional[str]],
        reconnect_interval: float,
        timer_factory: Callable[..., PeriodicTimer] = PeriodicTimer,
    ):
        self.stream_client = stream_client or EventStreamClient(
            connect_timeout=config.STREAM_CONNECT_TIMEOUT,
            read_timeout=config.STREAM_READ_TIMEOUT,
        )
        self.token_provider = token_provider
        self.reconnect_interval = reconnect_interval
        self.timer_factory = timer_factory

        self._lock = threading.RLock()
        self._mode = MonitorMode.IDLE
        self._stream_handle: Optional[StreamHandle] = None
        self._stream_gen = 0
        self._stream_opened_at: Optional[float] = None
        self._poll_timers: List[PeriodicTimer] = []
        self._reconnect_timer: Optional[PeriodicTimer] = None

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def stream_url(self) -> str:
        raise NotImplementedError

    def poll_specs(self) -> List[PollSpec]:
        raise NotImplementedError

    def apply_event(self, payload) -> None:
        raise NotImplementedError

    def on_start(self) -> None:
        """One-shot loads performed before the stream is opened"""

    def on_unauthenticated(self) -> None:
        """Called when stream setup failed for lack of a credential"""

    def on_stop(self) -> None:
        """Release subclass resources after the stream and timers are gone"""

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def mode(self) -> MonitorMode:
        with self._lock:
            return self._mode

    @property
    def stopped(self) -> bool:
        with self._lock:
            return self._mode == MonitorMode.STOPPED

    def start(self) -> None:
        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                logger.warning(f"{self.label} is stopped and cannot be restarted")
                return
            if self._mode != MonitorMode.IDLE:
                logger.warning(f"{self.label} already running ({self._mode.value})")
                return

        logger.info(f"{self.label} starting")
        self.on_start()
        self._connect_stream()

    def stop(self) -> None:
        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                return
            self._mode = MonitorMode.STOPPED
            handle = self._stream_handle
            self._stream_handle = None
            timers = self._take_timers()

        if handle is not None:
            handle.cancel()
        for timer in timers:
            timer.cancel()
        for timer in timers:
            timer.join()
        self.on_stop()
        logger.info(f"{self.label} stopped")

    # ------------------------------------------------------------------
    # Stream handling
    # ------------------------------------------------------------------

    def _connect_stream(self) -> None:
        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                return
            old = self._stream_handle
            self._stream_handle = None
            self._stream_gen += 1
            gen = self._stream_gen
        if old is not None:
            old.cancel()

        try:
            handle = self.stream_client.open(
                self.stream_url(),
                self.token_provider(),
                on_event=lambda event: self._on_stream_event(gen, event),
                on_error=lambda err: self._on_stream_error(gen, err),
                on_open=lambda: self._on_stream_open(gen),
                on_complete=lambda: self._on_stream_complete(gen),
            )
        except Unauthenticated as e:
            logger.error(f"{self.label} cannot open stream: {e}")
            with self._lock:
                if self._mode == MonitorMode.STOPPED:
                    return
                self._mode = MonitorMode.IDLE
                timers = self._take_timers()
            for timer in timers:
                timer.cancel()
            self.on_unauthenticated()
            return

        with self._lock:
            if self._mode != MonitorMode.STOPPED and gen == self._stream_gen:
                self._stream_handle = handle
                return
        handle.cancel()

    def _is_current(self, gen: int) -> bool:
        return gen == self._stream_gen and self._mode != MonitorMode.STOPPED

    def _on_stream_open(self, gen: int) -> None:
        with self._lock:
            if not self._is_current(gen):
                return
            previous = self._mode
            self._mode = MonitorMode.STREAMING
            self._stream_opened_at = time.monotonic()
            timers = self._take_timers()
        for timer in timers:
            timer.cancel()
        if previous != MonitorMode.STREAMING:
            logger.info(f"{self.label} streaming ({previous.value} -> streaming)")

    def _on_stream_event(self, gen: int, event: StreamEvent) -> None:
        with self._lock:
            if not self._is_current(gen):
                return
        try:
            payload = decode_stream_event(event)
        except ProtocolError as e:
            logger.warning(f"{self.label}: {e}")
            return
        if payload is None:
            logger.debug(f"{self.label} ignoring '{event.type}' event")
            return
        self.apply_event(payload)

    def _on_stream_error(self, gen: int, error: Exception) -> None:
        with self._lock:
            if not self._is_current(gen):
                return
            self._stream_handle = None
            if self._mode == MonitorMode.POLLING:
                logger.debug(f"{self.label} stream reconnect failed: {error}")
                return
            self._enter_polling()
        logger.warning(f"{self.label} stream unavailable, falling back to polling: {error}")

    def _on_stream_complete(self, gen: int) -> None:
        with self._lock:
            if not self._is_current(gen):
                return
            self._stream_handle = None
            opened_at = self._stream_opened_at
            short_lived = opened_at is None or time.monotonic() - opened_at < MIN_STREAM_LIFETIME
            if short_lived and self._mode != MonitorMode.POLLING:
                self._enter_polling()
                logger.warning(f"{self.label} stream closed right after connecting, falling back to polling")
                return
        logger.info(f"{self.label} stream closed by server, reconnecting")
        self._connect_stream()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def _enter_polling(self) -> None:
        """Caller holds the lock"""
        self._mode = MonitorMode.POLLING
        for interval, callback, name in self.poll_specs():
            timer = self.timer_factory(interval, callback, name=name, run_immediately=True)
            self._poll_timers.append(timer)
            timer.start()
        self._reconnect_timer = self.timer_factory(
            self.reconnect_interval, self._connect_stream, name=f"{self.label}-reconnect"
        )
        self._reconnect_timer.start()

    def _take_timers(self) -> List[PeriodicTimer]:
        """Caller holds the lock; returns timers for the caller to cancel outside it"""
        timers = list(self._poll_timers)
        if self._reconnect_timer is not None:
            timers.append(self._reconnect_timer)
        self._poll_timers = []
        self._reconnect_timer = None
        return timers

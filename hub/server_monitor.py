"""
Server Resource Monitor

Keeps the host's resource summary (cpu/memory/disk/load/uptime) and the list
of managed OS services. Fed by `serverHealth` events from /server/health/stream;
when the stream is down, GET /server/health/summary and
GET /server/services/status are polled every 30 seconds.
"""

import logging
from typing import List, Optional, Tuple

from hub import config
from hub.api_client import ServerClient
from hub.models import MonitorMode, RunningService, ServerHealthSummary, ServerHealthUpdate
from hub.stream_monitor import PollSpec, StreamingMonitor
from shared.errors import HubError
from shared.periodic import PeriodicTimer
from shared.sse_client import EventStreamClient

logger = logging.getLogger(__name__)


class ServerResourceMonitor(StreamingMonitor):
    label = "server-monitor"

    def __init__(
        self,
        client: ServerClient,
        stream_client: Optional[EventStreamClient] = None,
        poll_interval: float = config.SERVER_POLL_INTERVAL,
        reconnect_interval: float = config.STREAM_RECONNECT_INTERVAL,
        timer_factory=PeriodicTimer,
    ):
        super().__init__(stream_client, client.current_token, reconnect_interval, timer_factory)
        self.client = client
        self.poll_interval = poll_interval

        self._summary: Optional[ServerHealthSummary] = None
        self._services: Tuple[RunningService, ...] = ()
        self._loading = False

    @property
    def summary(self) -> Optional[ServerHealthSummary]:
        with self._lock:
            return self._summary

    def running_services(self) -> Tuple[RunningService, ...]:
        with self._lock:
            return self._services

    @property
    def loading(self) -> bool:
        with self._lock:
            return self._loading

    def stream_url(self) -> str:
        return self.client.stream_url()

    def poll_specs(self) -> List[PollSpec]:
        return [(self.poll_interval, self.load_server_data, "server-poll")]

    def on_start(self) -> None:
        self.load_server_data()

    def apply_event(self, payload) -> None:
        if not isinstance(payload, ServerHealthUpdate):
            logger.debug(f"Server monitor ignoring {type(payload).__name__}")
            return
        summary = payload.summary()
        services = tuple(payload.runningServices)
        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                return
            self._summary = summary
            self._services = services
            self._loading = False

    def load_server_data(self) -> None:
        """
        Fetch summary and services with independent error handling.

        A failed request keeps the previous value; the loading flag is
        cleared either way.
        """
        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                return
            self._loading = True

        try:
            try:
                summary = self.client.get_server_health_summary()
            except HubError as e:
                logger.warning(f"Failed to load server health summary: {e}")
            else:
                with self._lock:
                    if self._mode != MonitorMode.STOPPED:
                        self._summary = summary

            try:
                services = self.client.get_running_services()
            except HubError as e:
                logger.warning(f"Failed to load running services: {e}")
            else:
                with self._lock:
                    if self._mode != MonitorMode.STOPPED:
                        self._services = tuple(services)
        finally:
            with self._lock:
                self._loading = False

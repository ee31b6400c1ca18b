"""
Hub Health Monitor

Maintains the deployer's reachability (ServiceStatus) and the live/dead
state of every application that declares an application_url.

Sources, in order of preference:
- `health` and `appStatus` events from /deployment/health/stream
- when the stream is down: GET /deployment/health every 30s and one
  GET /deployment/applications/{name}/health probe per application every 10s

A transition Offline -> Online reloads the application list before the new
status is published.
"""

import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

from hub import config
from hub.api_client import DeploymentClient
from hub.models import (
    AppStatusUpdate,
    ApplicationConfig,
    HealthUpdate,
    LiveStatus,
    MonitorMode,
    ServiceStatus,
    health_flag_to_status,
    is_recovery,
)
from hub.stream_monitor import PollSpec, StreamingMonitor
from shared.errors import HubError
from shared.periodic import PeriodicTimer
from shared.sse_client import EventStreamClient

logger = logging.getLogger(__name__)


def _resolved(status: LiveStatus) -> "Future[LiveStatus]":
    future: Future = Future()
    future.set_result(status)
    return future


class HealthMonitor(StreamingMonitor):
    """
    Single writer of ServiceStatus, the application list and the LiveStatus map.

    Readers get copies through service_status, applications() and
    live_statuses().
    """

    label = "health-monitor"

    def __init__(
        self,
        client: DeploymentClient,
        stream_client: Optional[EventStreamClient] = None,
        health_interval: float = config.HEALTH_POLL_INTERVAL,
        app_status_interval: float = config.APP_STATUS_POLL_INTERVAL,
        reconnect_interval: float = config.STREAM_RECONNECT_INTERVAL,
        probe_workers: int = config.PROBE_WORKERS,
        timer_factory=PeriodicTimer,
        executor: Optional[Executor] = None,
    ):
        super().__init__(stream_client, client.current_token, reconnect_interval, timer_factory)
        self.client = client
        self.health_interval = health_interval
        self.app_status_interval = app_status_interval

        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=probe_workers, thread_name_prefix="live-probe"
        )

        self._service_status = ServiceStatus.CHECKING
        self._recovering = False
        self._applications: Tuple[ApplicationConfig, ...] = ()
        self._live: Dict[str, LiveStatus] = {}
        self._probe_seq: Dict[str, int] = {}
        self._in_flight: Dict[str, int] = {}
        self._loading = False

        logger.info(
            f"Health monitor initialized: health_poll={health_interval}s, "
            f"app_status_poll={app_status_interval}s"
        )

    # ------------------------------------------------------------------
    # Read-only snapshots
    # ------------------------------------------------------------------

    @property
    def service_status(self) -> ServiceStatus:
        with self._lock:
            return self._service_status

    @property
    def loading(self) -> bool:
        with self._lock:
            return self._loading

    def applications(self) -> Tuple[ApplicationConfig, ...]:
        with self._lock:
            return self._applications

    def get_application(self, name: str) -> Optional[ApplicationConfig]:
        with self._lock:
            for app in self._applications:
                if app.name == name:
                    return app
        return None

    def live_statuses(self) -> Dict[str, LiveStatus]:
        with self._lock:
            return dict(self._live)

    # ------------------------------------------------------------------
    # StreamingMonitor hooks
    # ------------------------------------------------------------------

    def stream_url(self) -> str:
        return self.client.stream_url()

    def poll_specs(self) -> List[PollSpec]:
        return [
            (self.health_interval, self.check_health, "health-poll"),
            (self.app_status_interval, self.check_all_apps_live_status, "app-status-poll"),
        ]

    def on_start(self) -> None:
        self.refresh_applications()

    def on_unauthenticated(self) -> None:
        self._set_status(ServiceStatus.ERROR)

    def on_stop(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def apply_event(self, payload) -> None:
        if isinstance(payload, HealthUpdate):
            self._apply_health(payload.healthy)
        elif isinstance(payload, AppStatusUpdate):
            statuses = {name: LiveStatus.from_flag(flag) for name, flag in payload.appStatuses.items()}
            with self._lock:
                if self._mode == MonitorMode.STOPPED:
                    return
                self._live = statuses
        else:
            logger.debug(f"Health monitor ignoring {type(payload).__name__}")

    # ------------------------------------------------------------------
    # Application list
    # ------------------------------------------------------------------

    def refresh_applications(self) -> bool:
        """
        Reload the application list (full replace).

        LiveStatus entries survive for applications that still declare a URL,
        new ones start as Unknown, removed ones are dropped. In polling mode a
        liveness sweep follows.

        Returns:
            True if the list was replaced
        """
        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                return False
            self._loading = True

        try:
            apps = self.client.get_applications()
        except HubError as e:
            logger.warning(f"Failed to load applications: {e}")
            return False
        finally:
            with self._lock:
                self._loading = False

        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                return False
            self._applications = tuple(apps)
            self._live = {
                app.name: self._live.get(app.name, LiveStatus.UNKNOWN)
                for app in apps
                if app.application_url
            }
            sweep = self._mode == MonitorMode.POLLING

        logger.info(f"Loaded {len(apps)} application(s)")
        if sweep:
            self.check_all_apps_live_status()
        return True

    # ------------------------------------------------------------------
    # Service health
    # ------------------------------------------------------------------

    def check_health(self) -> ServiceStatus:
        """One-shot GET /deployment/health; a failed request sets Error"""
        try:
            health = self.client.get_health()
        except HubError as e:
            logger.warning(f"Deployer health check failed: {e}")
            self._set_status(ServiceStatus.ERROR)
            return ServiceStatus.ERROR

        healthy = health.get("healthy") if isinstance(health, dict) else False
        return self._apply_health(healthy)

    def _apply_health(self, healthy) -> ServiceStatus:
        new_status = health_flag_to_status(healthy)
        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                return self._service_status
            recovered = is_recovery(self._service_status, new_status) and not self._recovering
            if recovered:
                self._recovering = True

        if recovered:
            logger.info("Deployer back online, reloading applications")
            try:
                self.refresh_applications()
            finally:
                with self._lock:
                    self._recovering = False

        self._set_status(new_status)
        return new_status

    def _set_status(self, status: ServiceStatus) -> None:
        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                return
            if status != self._service_status:
                logger.info(f"Deployer status {self._service_status.value} -> {status.value}")
            self._service_status = status

    # ------------------------------------------------------------------
    # Liveness probes
    # ------------------------------------------------------------------

    def check_app_live_status(self, name: str) -> "Future[LiveStatus]":
        """
        Probe one application's URL.

        The entry goes to Checking at once and resolves to Live or Dead; any
        failure resolves to Dead. Applications without an application_url are
        never probed: the returned future is already resolved to Unknown.
        """
        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                return _resolved(LiveStatus.UNKNOWN)
            app = self.get_application(name)
            if app is None or not app.application_url:
                logger.debug(f"Skipping live check for {name}: no application_url")
                return _resolved(LiveStatus.UNKNOWN)
            seq = self._probe_seq.get(name, 0) + 1
            self._probe_seq[name] = seq
            self._in_flight[name] = self._in_flight.get(name, 0) + 1
            self._live[name] = LiveStatus.CHECKING

        try:
            return self._executor.submit(self._probe, name, seq)
        except RuntimeError:
            # executor shut down by a concurrent stop()
            self._probe_done(name)
            return _resolved(LiveStatus.UNKNOWN)

    def check_all_apps_live_status(self) -> List["Future[LiveStatus]"]:
        """Sweep every application with a URL, skipping those still being probed"""
        with self._lock:
            names = [app.name for app in self._applications if app.application_url]
            busy = [name for name in names if self._in_flight.get(name)]
        if busy:
            logger.debug(f"Live check still running for {', '.join(busy)}, skipping this sweep")
        return [self.check_app_live_status(name) for name in names if name not in busy]

    def _probe_done(self, name: str) -> None:
        with self._lock:
            remaining = self._in_flight.get(name, 0) - 1
            if remaining > 0:
                self._in_flight[name] = remaining
            else:
                self._in_flight.pop(name, None)

    def _probe(self, name: str, seq: int) -> LiveStatus:
        try:
            response = self.client.check_app_live_status(name)
            status = LiveStatus.LIVE if isinstance(response, dict) and response.get("live") else LiveStatus.DEAD
        except Exception as e:
            logger.debug(f"Live check for {name} failed: {e}")
            status = LiveStatus.DEAD
        finally:
            self._probe_done(name)

        with self._lock:
            if self._mode == MonitorMode.STOPPED:
                return status
            if self.get_application(name) is None:
                return status
            # An older result still replaces the Checking placeholder
            if self._probe_seq.get(name) != seq and self._live.get(name) != LiveStatus.CHECKING:
                logger.debug(f"Discarding stale live check #{seq} for {name}")
                return status
            self._live[name] = status
        return status

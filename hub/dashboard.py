"""
Hub Dashboard

Wires the monitors and the dispatcher together and keeps the small amount of
operator state that belongs to neither: the selected application, the last
action response, the last rendered logs/status text, and the notification
feed. The presentation layer reads snapshot() and forwards intents here.
"""

import logging
import threading
from collections import deque
from concurrent.futures import Future
from typing import Deque, List, Optional

from hub import config
from hub.api_client import DeploymentClient, ServerClient
from hub.auth import AuthSession
from hub.dispatcher import ActionDispatcher, ActionOutcome
from hub.health_monitor import HealthMonitor
from hub.models import ApplicationConfig, DashboardSnapshot, DeploymentResponse, Notification
from hub.server_monitor import ServerResourceMonitor
from shared.sse_client import EventStreamClient

logger = logging.getLogger(__name__)

MAX_NOTIFICATIONS = 100


def describe(app: Optional[ApplicationConfig]) -> str:
    if app is None:
        return "No description"
    parts = []
    if app.build_type:
        parts.append(f"Build: {app.build_type}")
    if app.service_name:
        parts.append(f"Service: {app.service_name}")
    return " | ".join(parts) if parts else "No description"


def matches_filter(app: ApplicationConfig, text: str) -> bool:
    needle = text.lower()
    return (
        needle in app.name.lower()
        or bool(app.git_url and needle in app.git_url.lower())
        or bool(app.service_name and needle in app.service_name.lower())
    )


class Dashboard:
    def __init__(
        self,
        deployment_client: DeploymentClient,
        server_client: ServerClient,
        stream_client: Optional[EventStreamClient] = None,
        health_monitor: Optional[HealthMonitor] = None,
        server_monitor: Optional[ServerResourceMonitor] = None,
        dispatcher: Optional[ActionDispatcher] = None,
        log_lines: int = config.DEFAULT_LOG_LINES,
        auth: Optional[AuthSession] = None,
    ):
        stream_client = stream_client or EventStreamClient(
            connect_timeout=config.STREAM_CONNECT_TIMEOUT,
            read_timeout=config.STREAM_READ_TIMEOUT,
        )
        self.log_lines = log_lines
        self.auth = auth

        self.health = health_monitor or HealthMonitor(deployment_client, stream_client)
        self.server = server_monitor or ServerResourceMonitor(server_client, stream_client)
        self.dispatcher = dispatcher or ActionDispatcher(deployment_client)
        self.dispatcher.recheck = self.health.check_app_live_status
        self.dispatcher.notify = self._push_notification
        self.dispatcher.on_outcome = self._record_outcome

        self._lock = threading.Lock()
        self._selected: Optional[ApplicationConfig] = None
        self._last_response: Optional[DeploymentResponse] = None
        self._logs_content = ""
        self._status_content = ""
        self._notifications: Deque[Notification] = deque(maxlen=MAX_NOTIFICATIONS)

    def start(self) -> None:
        self.health.start()
        self.server.start()
        logger.info("Dashboard started")

    def close(self) -> None:
        self.health.stop()
        self.server.stop()
        self.dispatcher.shutdown()
        if self.auth is not None:
            self.auth.logout()
        logger.info("Dashboard closed")

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @property
    def selected_app(self) -> Optional[ApplicationConfig]:
        with self._lock:
            return self._selected

    def select_app(self, name: str) -> ApplicationConfig:
        """
        Select an application and re-check its live status if it has a URL.

        Raises:
            KeyError: If no application with that name is loaded
        """
        app = self.health.get_application(name)
        if app is None:
            raise KeyError(name)
        with self._lock:
            self._selected = app
            self._last_response = None
        logger.debug(f"Selected app: {app.name}")
        if app.application_url:
            self.health.check_app_live_status(app.name)
        return app

    def filtered_applications(self, filter_text: str = "") -> List[ApplicationConfig]:
        apps = list(self.health.applications())
        if not filter_text:
            return apps
        return [app for app in apps if matches_filter(app, filter_text)]

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def _lines_for(self, action_id: str, lines: Optional[int]) -> Optional[int]:
        if lines is None and action_id == "logs":
            return self.log_lines
        return lines

    def execute_action(
        self,
        action_id: str,
        lines: Optional[int] = None,
        application: Optional[ApplicationConfig] = None,
    ) -> Optional[ActionOutcome]:
        app = application or self.selected_app
        return self.dispatcher.execute(app, action_id, self._lines_for(action_id, lines))

    def submit_action(
        self,
        action_id: str,
        lines: Optional[int] = None,
        application: Optional[ApplicationConfig] = None,
    ) -> Optional["Future[ActionOutcome]"]:
        """Dispatch in the background against application, or the current selection"""
        app = application or self.selected_app
        return self.dispatcher.submit(app, action_id, self._lines_for(action_id, lines))

    def is_action_active(self, action_id: str) -> bool:
        app = self.selected_app
        if app is None:
            return False
        return self.dispatcher.is_active(app.name, action_id)

    def _record_outcome(self, outcome: ActionOutcome) -> None:
        with self._lock:
            if outcome.response is not None:
                self._last_response = outcome.response
            if outcome.logs_text is not None:
                self._logs_content = outcome.logs_text
            if outcome.status_text is not None:
                self._status_content = outcome.status_text

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _push_notification(self, notification: Notification) -> None:
        with self._lock:
            self._notifications.append(notification)

    def drain_notifications(self) -> List[Notification]:
        with self._lock:
            drained = list(self._notifications)
            self._notifications.clear()
        return drained

    # ------------------------------------------------------------------
    # Refresh / read model
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        self.health.refresh_applications()
        self.server.load_server_data()
        self.health.check_health()

    def snapshot(self) -> DashboardSnapshot:
        with self._lock:
            selected = self._selected.name if self._selected else None
            last_response = self._last_response
            logs_content = self._logs_content
            status_content = self._status_content

        return DashboardSnapshot(
            service_status=self.health.service_status,
            health_mode=self.health.mode,
            server_mode=self.server.mode,
            applications_loading=self.health.loading,
            server_loading=self.server.loading,
            applications=list(self.health.applications()),
            live_statuses=self.health.live_statuses(),
            server_health=self.server.summary,
            running_services=list(self.server.running_services()),
            selected_app=selected,
            active_actions=self.dispatcher.active_keys(),
            last_response=last_response,
            logs_content=logs_content,
            status_content=status_content,
        )

"""Deterministic stand-ins for timers, executors, stream and REST clients."""

from __future__ import annotations

from collections import deque
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, Optional

from hub.models import ApplicationConfig, RunningService, ServerHealthSummary
from shared.errors import TransportError, Unauthenticated
from shared.sse_client import StreamEvent

BASE_URL = "http://hub.test/api"


class ManualTimer:
    def __init__(self, interval, callback, name="periodic", run_immediately=False):
        self.interval = interval
        self.callback = callback
        self.name = name
        self.run_immediately = run_immediately
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True
        return self

    def cancel(self):
        self.cancelled = True

    def join(self, timeout=5.0):
        pass

    def fire(self):
        if self.started and not self.cancelled:
            self.callback()


class TimerFactory:
    def __init__(self) -> None:
        self.timers: List[ManualTimer] = []

    def __call__(self, interval, callback, name="periodic", run_immediately=False):
        timer = ManualTimer(interval, callback, name=name, run_immediately=run_immediately)
        self.timers.append(timer)
        return timer

    def active(self) -> List[ManualTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]

    def named(self, name: str) -> ManualTimer:
        matches = [t for t in self.active() if t.name == name]
        assert len(matches) == 1, f"expected one active timer {name!r}, got {len(matches)}"
        return matches[0]


class InlineExecutor:
    """Runs submitted work immediately in the calling thread."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait=True, cancel_futures=False):
        pass


class DeferredExecutor:
    """Queues submitted work until the test runs it."""

    def __init__(self) -> None:
        self.pending: deque = deque()

    def submit(self, fn, *args, **kwargs):
        future: Future = Future()
        self.pending.append((future, fn, args, kwargs))
        return future

    def run_next(self):
        future, fn, args, kwargs = self.pending.popleft()
        future.set_result(fn(*args, **kwargs))
        return future

    def run_last(self):
        future, fn, args, kwargs = self.pending.pop()
        future.set_result(fn(*args, **kwargs))
        return future

    def shutdown(self, wait=True, cancel_futures=False):
        pass


class FakeConnection:
    def __init__(self, endpoint, token, on_event, on_error, on_open, on_complete):
        self.endpoint = endpoint
        self.token = token
        self.on_event = on_event
        self.on_error = on_error
        self.on_open = on_open
        self.on_complete = on_complete
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def connect(self):
        if not self.cancelled and self.on_open:
            self.on_open()

    def emit(self, event_type: str, data: Any):
        if not self.cancelled:
            self.on_event(StreamEvent(type=event_type, data=data))

    def fail(self, message: str = "connection reset"):
        if not self.cancelled:
            self.on_error(TransportError(message))

    def close(self):
        if not self.cancelled and self.on_complete:
            self.on_complete()


class FakeStreamClient:
    def __init__(self) -> None:
        self.connections: List[FakeConnection] = []

    def open(self, endpoint, auth_token, on_event, on_error, on_open=None, on_complete=None):
        if not auth_token:
            raise Unauthenticated(f"No credential available for stream {endpoint}")
        conn = FakeConnection(endpoint, auth_token, on_event, on_error, on_open, on_complete)
        self.connections.append(conn)
        return conn

    @property
    def latest(self) -> FakeConnection:
        return self.connections[-1]


class FakeDeploymentClient:
    def __init__(self, applications: Optional[List[dict]] = None, token: Optional[str] = "token-1"):
        self.token = token
        self.applications = [ApplicationConfig.model_validate(a) for a in (applications or [])]
        self.health: Any = {"healthy": True}
        self.live: Dict[str, Any] = {}
        self.responses: Dict[str, Any] = {}
        self.calls: List[tuple] = []
        self.application_loads = 0
        self.probe_calls: List[str] = []
        self.hooks: Dict[str, Callable[[], None]] = {}

    def current_token(self):
        return self.token

    def stream_url(self):
        return f"{BASE_URL}/deployment/health/stream"

    def get_applications(self):
        self.application_loads += 1
        if isinstance(self.applications, Exception):
            raise self.applications
        return list(self.applications)

    def get_health(self):
        if isinstance(self.health, Exception):
            raise self.health
        return self.health

    def check_app_live_status(self, name):
        self.probe_calls.append(name)
        result = self.live.get(name, {"live": True})
        if callable(result):
            result = result()
        if isinstance(result, Exception):
            raise result
        return result

    def _respond(self, key, *call):
        self.calls.append(call)
        hook = self.hooks.get(key)
        if hook is not None:
            hook()
        result = self.responses.get(key, {"success": True, "message": f"{key} ok"})
        if isinstance(result, Exception):
            raise result
        return result

    def run_lifecycle(self, verb, name):
        return self._respond(verb, "lifecycle", verb, name)

    def get_status(self, name):
        return self._respond("status", "status", name)

    def get_logs(self, name, lines=100):
        return self._respond("logs", "logs", name, lines)

    def execute_action(self, name, action, lines=None):
        return self._respond(action, "execute", name, action, lines)


class FakeServerClient:
    def __init__(self, token: Optional[str] = "token-1"):
        self.token = token
        self.summary: Any = ServerHealthSummary(cpuUsage=12.5, memoryUsage=40.0, diskUsage=70.0, loadAverage=0.5)
        self.services: Any = [RunningService(name="nginx", status="active")]
        self.summary_calls = 0
        self.services_calls = 0

    def current_token(self):
        return self.token

    def stream_url(self):
        return f"{BASE_URL}/server/health/stream"

    def get_server_health_summary(self):
        self.summary_calls += 1
        if isinstance(self.summary, Exception):
            raise self.summary
        return self.summary

    def get_running_services(self):
        self.services_calls += 1
        if isinstance(self.services, Exception):
            raise self.services
        return list(self.services)


def make_dashboard(applications: List[dict], auth=None, start: bool = True):
    """Dashboard over fakes, started unless asked not to; returns (dashboard, deployment_client, stream_client)"""
    from hub.dashboard import Dashboard
    from hub.dispatcher import ActionDispatcher
    from hub.health_monitor import HealthMonitor
    from hub.server_monitor import ServerResourceMonitor

    deployment = FakeDeploymentClient(applications)
    server = FakeServerClient()
    streams = FakeStreamClient()
    timers = TimerFactory()
    executor = InlineExecutor()
    dashboard = Dashboard(
        deployment,
        server,
        stream_client=streams,
        health_monitor=HealthMonitor(deployment, streams, timer_factory=timers, executor=executor),
        server_monitor=ServerResourceMonitor(server, streams, timer_factory=timers),
        dispatcher=ActionDispatcher(deployment, executor=executor),
        auth=auth,
    )
    if start:
        dashboard.start()
    return dashboard, deployment, streams

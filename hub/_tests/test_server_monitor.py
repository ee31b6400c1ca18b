from hub import config
from hub.models import MonitorMode, RunningService, ServerHealthSummary
from hub.server_monitor import ServerResourceMonitor
from shared.errors import TransportError

from hub_fakes import FakeServerClient, FakeStreamClient, TimerFactory

SERVER_EVENT = {
    "cpuUsage": 55.5,
    "memoryUsage": 61.0,
    "diskUsage": 80.2,
    "loadAverage": 1.25,
    "totalMemory": "16G",
    "usedMemory": "9.8G",
    "uptime": "3 days",
    "runningServices": [
        {"name": "postgresql", "status": "active", "description": "PostgreSQL"},
        {"name": "redis", "status": "inactive"},
    ],
    "timestamp": 1718000000000,
}


def _monitor(client=None):
    client = client or FakeServerClient()
    streams = FakeStreamClient()
    timers = TimerFactory()
    monitor = ServerResourceMonitor(client, streams, timer_factory=timers)
    return monitor, client, streams, timers


def test_start_loads_summary_and_services():
    monitor, client, streams, _ = _monitor()
    monitor.start()

    assert monitor.summary.cpuUsage == 12.5
    assert [s.name for s in monitor.running_services()] == ["nginx"]
    assert not monitor.loading
    assert streams.latest.endpoint.endswith("/server/health/stream")


def test_server_health_event_replaces_both_values():
    monitor, _, streams, _ = _monitor()
    monitor.start()
    streams.latest.connect()

    streams.latest.emit("serverHealth", SERVER_EVENT)

    summary = monitor.summary
    assert isinstance(summary, ServerHealthSummary)
    assert summary.cpuUsage == 55.5
    assert summary.uptime == "3 days"
    assert monitor.running_services() == (
        RunningService(name="postgresql", status="active", description="PostgreSQL"),
        RunningService(name="redis", status="inactive"),
    )


def test_health_events_are_ignored():
    monitor, _, streams, _ = _monitor()
    monitor.start()
    streams.latest.connect()
    before = monitor.summary

    streams.latest.emit("health", {"healthy": False})
    assert monitor.summary == before


def test_requests_fail_independently():
    monitor, client, _, _ = _monitor()
    monitor.start()
    previous_summary = monitor.summary

    client.summary = TransportError("HTTP 502: bad gateway")
    client.services = [RunningService(name="docker", status="active")]
    monitor.load_server_data()

    assert monitor.summary == previous_summary
    assert [s.name for s in monitor.running_services()] == ["docker"]
    assert not monitor.loading


def test_loading_cleared_when_both_requests_fail():
    monitor, client, _, _ = _monitor()
    client.summary = TransportError("down")
    client.services = TransportError("down")

    monitor.load_server_data()

    assert monitor.summary is None
    assert monitor.running_services() == ()
    assert not monitor.loading


def test_polls_every_thirty_seconds_while_stream_is_down():
    monitor, client, streams, timers = _monitor()
    monitor.start()
    streams.latest.fail()

    assert monitor.mode == MonitorMode.POLLING
    poll = timers.named("server-poll")
    assert poll.interval == 30
    assert poll.run_immediately

    calls = client.summary_calls
    poll.fire()
    assert client.summary_calls == calls + 1
    assert client.services_calls == calls + 1


def test_stop_is_terminal():
    monitor, client, streams, timers = _monitor()
    monitor.start()
    streams.latest.fail()

    monitor.stop()
    calls = client.summary_calls
    monitor.load_server_data()

    assert monitor.mode == MonitorMode.STOPPED
    assert timers.active() == []
    assert client.summary_calls == calls


def test_default_stream_client_times_out_silent_reads():
    monitor = ServerResourceMonitor(FakeServerClient(), timer_factory=TimerFactory())
    assert monitor.stream_client.read_timeout == config.STREAM_READ_TIMEOUT

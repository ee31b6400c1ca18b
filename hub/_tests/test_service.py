import pytest
from fastapi.testclient import TestClient

from hub import service
from hub.auth import AuthSession
from hub.models import MonitorMode

from hub_fakes import make_dashboard

APPS = [
    {"name": "foo", "build_type": "maven", "service_name": "foo.service",
     "application_url": "https://foo.example.com"},
    {"name": "bar", "git_url": "git@github.com:acme/bar.git"},
]


@pytest.fixture
def hub():
    dashboard, deployment, streams = make_dashboard(APPS)
    service.set_dashboard(dashboard)
    # no `with`: the lifespan handler would build a real dashboard
    client = TestClient(service.app)
    yield client, dashboard, deployment
    service.set_dashboard(None)
    dashboard.close()


def test_root():
    client = TestClient(service.app)
    assert client.get("/").json() == {"service": "adminhub", "status": "running"}


def test_endpoints_unavailable_without_dashboard():
    service.set_dashboard(None)
    client = TestClient(service.app)
    assert client.get("/hub/status").status_code == 503


def test_status_snapshot(hub):
    client, _, _ = hub
    body = client.get("/hub/status").json()

    assert body["service_status"] == "Checking"
    assert body["health_mode"] == "idle"
    assert [a["name"] for a in body["applications"]] == ["foo", "bar"]
    assert body["live_statuses"] == {"foo": "Unknown"}
    assert body["server_health"]["cpuUsage"] == 12.5


def test_application_list_with_filter(hub):
    client, _, _ = hub

    rows = client.get("/hub/applications").json()
    assert [r["description"] for r in rows] == ["Build: maven | Service: foo.service", "No description"]
    assert rows[0]["live_status"] == "Unknown"
    assert rows[1]["live_status"] is None

    rows = client.get("/hub/applications", params={"filter": "ACME"}).json()
    assert [r["application"]["name"] for r in rows] == ["bar"]


def test_select_unknown_application_is_404(hub):
    client, _, _ = hub
    assert client.post("/hub/select/ghost").status_code == 404


def test_action_requires_selection(hub):
    client, _, deployment = hub
    assert client.post("/hub/actions/deploy").status_code == 409
    assert deployment.calls == []


def test_action_runs_on_selected_application(hub):
    client, dashboard, deployment = hub
    assert client.post("/hub/select/bar").json()["name"] == "bar"

    response = client.post("/hub/actions/logs")
    assert response.status_code == 202
    assert response.json() == {"key": "bar:logs", "application_name": "bar", "action": "logs"}
    assert deployment.calls == [("logs", "bar", 1000)]

    notes = client.get("/hub/notifications").json()
    assert [(n["level"], n["title"]) for n in notes] == [("success", "Logs Complete")]
    assert client.get("/hub/notifications").json() == []
    assert client.get("/hub/actions/active").json() == []


def test_action_keeps_application_selected_when_request_arrived(hub):
    client, dashboard, deployment = hub
    client.post("/hub/select/foo")
    submit = dashboard.submit_action

    def reselect_then_submit(*args, **kwargs):
        # another request changes the selection mid-flight
        dashboard.select_app("bar")
        return submit(*args, **kwargs)

    dashboard.submit_action = reselect_then_submit
    response = client.post("/hub/actions/deploy")

    assert response.json()["application_name"] == "foo"
    assert deployment.calls == [("lifecycle", "deploy", "foo")]


def test_action_already_in_progress_is_409(hub):
    client, dashboard, _ = hub
    client.post("/hub/select/foo")
    dashboard.dispatcher._claim(dashboard.selected_app, "deploy")

    response = client.post("/hub/actions/deploy")
    assert response.status_code == 409
    assert client.get("/hub/actions/active").json() == ["foo:deploy"]


def test_refresh_reloads(hub):
    client, _, deployment = hub
    loads = deployment.application_loads

    body = client.post("/hub/refresh").json()
    assert deployment.application_loads == loads + 1
    assert body["service_status"] == "Online"


def test_lifespan_starts_and_closes_dashboard(monkeypatch):
    session = AuthSession("http://hub.test/api", token="preissued")
    dashboard, deployment, streams = make_dashboard(APPS, auth=session, start=False)
    monkeypatch.setattr(service, "build_dashboard", lambda: dashboard)

    with TestClient(service.app) as client:
        assert client.get("/hub/status").status_code == 200
        assert deployment.application_loads == 1
        assert len(streams.connections) == 2

    assert service._dashboard is None
    assert dashboard.health.mode == MonitorMode.STOPPED
    assert dashboard.server.mode == MonitorMode.STOPPED
    assert not session.is_authenticated()

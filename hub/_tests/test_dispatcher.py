import json
import threading

import pytest

from hub.dispatcher import (
    NO_LOGS_TEXT,
    ActionDispatcher,
    LifecycleAction,
    LifecycleOperation,
    LogsOperation,
    NamedActionOperation,
    OutcomeKind,
    StatusOperation,
    extract_logs,
    format_status,
    resolve_operation,
)
from hub.models import ApplicationConfig, NotificationLevel
from shared.errors import TransportError

from hub_fakes import FakeDeploymentClient

FOO = ApplicationConfig(name="foo", application_url="https://foo.example.com")
BAR = ApplicationConfig(name="bar")


def _dispatcher(client=None):
    client = client or FakeDeploymentClient()
    rechecked, notifications, outcomes = [], [], []
    dispatcher = ActionDispatcher(
        client,
        recheck=rechecked.append,
        notify=notifications.append,
        on_outcome=outcomes.append,
    )
    return dispatcher, client, rechecked, notifications, outcomes


def test_resolve_operation():
    assert resolve_operation("deploy") == LifecycleOperation(LifecycleAction.DEPLOY)
    assert resolve_operation("full-deploy") == LifecycleOperation(LifecycleAction.FULL_DEPLOY)
    assert resolve_operation("status") == StatusOperation()
    assert resolve_operation("logs") == LogsOperation(lines=1000)
    assert resolve_operation("logs", 50) == LogsOperation(lines=50)
    assert resolve_operation("rollback", 5) == NamedActionOperation("rollback", 5)


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"data": {"logs": {"stdout": "a\nb"}}}, "a\nb"),
        ({"data": {"logs": "plain text"}}, "plain text"),
        ({"data": {"stdout": "x"}}, "x"),
        ({"data": {"logs": {"stdout": ""}, "stdout": "fallback"}}, "fallback"),
        ({}, NO_LOGS_TEXT),
        ({"data": {}}, NO_LOGS_TEXT),
        ({"success": True}, NO_LOGS_TEXT),
        ({"data": "not a dict"}, NO_LOGS_TEXT),
    ],
)
def test_extract_logs(payload, expected):
    assert extract_logs(payload) == expected


def test_format_status_prefers_data():
    assert json.loads(format_status({"success": True, "data": {"state": "running"}})) == {"state": "running"}
    assert json.loads(format_status({"success": True})) == {"success": True}


def test_deploy_success_notifies_and_rechecks():
    dispatcher, client, rechecked, notifications, outcomes = _dispatcher()
    client.responses["deploy"] = {"success": True, "message": "ok"}

    outcome = dispatcher.execute(FOO, "deploy")

    assert outcome.kind == OutcomeKind.SUCCEEDED
    assert client.calls == [("lifecycle", "deploy", "foo")]
    assert notifications[0].level == NotificationLevel.SUCCESS
    assert notifications[0].title == "Deploy Complete"
    assert notifications[0].message == "ok"
    assert outcomes == [outcome]
    assert rechecked == ["foo"]
    assert not dispatcher.is_active("foo", "deploy")


def test_logs_renders_stdout():
    dispatcher, client, _, notifications, _ = _dispatcher()
    client.responses["logs"] = {"success": True, "data": {"logs": {"stdout": "line1\nline2"}}}

    outcome = dispatcher.execute(BAR, "logs", 1000)

    assert client.calls == [("logs", "bar", 1000)]
    assert outcome.logs_text == "line1\nline2"
    assert notifications[0].title == "Logs Complete"


def test_status_renders_pretty_json():
    dispatcher, client, _, _, _ = _dispatcher()
    client.responses["status"] = {"success": True, "data": {"active": True, "pid": 42}}

    outcome = dispatcher.execute(FOO, "status")

    assert outcome.status_text == json.dumps({"active": True, "pid": 42}, indent=2)


def test_remote_failure():
    dispatcher, client, rechecked, notifications, outcomes = _dispatcher()
    client.responses["restart"] = {"success": False, "message": "unit not found"}

    outcome = dispatcher.execute(FOO, "restart")

    assert outcome.kind == OutcomeKind.REMOTE_FAILURE
    assert notifications[0].level == NotificationLevel.ERROR
    assert notifications[0].title == "Restart Failed"
    assert notifications[0].message == "unit not found"
    assert outcome.response.success is False
    assert rechecked == ["foo"]


def test_transport_error_uses_embedded_message():
    dispatcher, client, rechecked, notifications, _ = _dispatcher()
    client.responses["build"] = TransportError(
        "HTTP 404: Not found", status_code=404, payload={"message": "Not found"}
    )

    outcome = dispatcher.execute(FOO, "build")

    assert outcome.kind == OutcomeKind.TRANSPORT_ERROR
    assert notifications[0].message == "Not found"
    assert rechecked == ["foo"]
    assert dispatcher.active_keys() == []


def test_transport_error_without_body_uses_exception_text():
    dispatcher, client, _, notifications, _ = _dispatcher()
    client.responses["stop"] = TransportError("POST /stop/foo failed: connection refused")

    dispatcher.execute(FOO, "stop")
    assert notifications[0].message == "POST /stop/foo failed: connection refused"


def test_unknown_action_goes_through_execute_endpoint():
    dispatcher, client, _, _, _ = _dispatcher()

    outcome = dispatcher.execute(FOO, "rollback", 3)

    assert client.calls == [("execute", "foo", "rollback", 3)]
    assert outcome.succeeded


def test_no_application_is_a_no_op():
    dispatcher, client, rechecked, notifications, _ = _dispatcher()

    assert dispatcher.execute(None, "deploy") is None
    assert dispatcher.submit(None, "deploy") is None
    assert client.calls == []
    assert rechecked == [] and notifications == []


def test_listener_errors_do_not_escape():
    client = FakeDeploymentClient()

    def broken(_):
        raise RuntimeError("listener bug")

    dispatcher = ActionDispatcher(client, recheck=broken, notify=broken, on_outcome=broken)
    outcome = dispatcher.execute(FOO, "verify")

    assert outcome.succeeded
    assert dispatcher.active_keys() == []


def test_duplicate_key_is_ignored_while_in_flight():
    dispatcher, client, _, notifications, _ = _dispatcher()
    entered, release = threading.Event(), threading.Event()

    def block():
        entered.set()
        release.wait(5)

    client.hooks["deploy"] = block
    try:
        first = dispatcher.submit(FOO, "deploy")
        assert entered.wait(5)
        assert dispatcher.is_active("foo", "deploy")
        assert dispatcher.active_keys() == ["foo:deploy"]

        assert dispatcher.submit(FOO, "deploy") is None
        assert dispatcher.execute(FOO, "deploy") is None
    finally:
        release.set()

    assert first.result(timeout=5).succeeded
    assert client.calls == [("lifecycle", "deploy", "foo")]
    assert len(notifications) == 1
    assert not dispatcher.is_active("foo", "deploy")
    dispatcher.shutdown()


def test_different_keys_run_concurrently():
    dispatcher, client, _, _, _ = _dispatcher()
    barrier = threading.Barrier(3, timeout=5)
    client.hooks["deploy"] = barrier.wait
    client.hooks["build"] = barrier.wait

    futures = [
        dispatcher.submit(FOO, "deploy"),
        dispatcher.submit(FOO, "build"),
        dispatcher.submit(BAR, "deploy"),
    ]

    assert all(f.result(timeout=5).succeeded for f in futures)
    assert dispatcher.active_keys() == []
    dispatcher.shutdown()

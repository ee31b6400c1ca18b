"""
Action Dispatcher

Runs operator-triggered actions against the deployer, at most one in flight
per (application, action) key. Different keys run concurrently; there is no
global lock.

Every path (success, remote failure, transport error) ends the same way:
the key is released, an outcome is published, and the application's live
status is re-checked. Nothing raises past execute().
"""

import enum
import json
import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Set, Union

from pydantic import ValidationError

from hub import config
from hub.api_client import DeploymentClient
from hub.models import ApplicationConfig, DeploymentResponse, Notification, NotificationLevel

logger = logging.getLogger(__name__)

NO_LOGS_TEXT = "No logs available"
UNKNOWN_ERROR_TEXT = "Unknown error occurred"


class LifecycleAction(str, enum.Enum):
    STATUS = "status"
    LOGS = "logs"
    CHECKOUT = "checkout"
    BUILD = "build"
    VERIFY = "verify"
    DEPLOY = "deploy"
    RESTART = "restart"
    STOP = "stop"
    FULL_DEPLOY = "full-deploy"


class OutcomeKind(str, enum.Enum):
    SUCCEEDED = "succeeded"
    REMOTE_FAILURE = "remote_failure"  # Request worked, server said success=false
    TRANSPORT_ERROR = "transport_error"


# ============================================================================
# OPERATION DESCRIPTORS
# ============================================================================

@dataclass(frozen=True)
class LifecycleOperation:
    """POST /deployment/{verb}/{app}"""
    action: LifecycleAction


@dataclass(frozen=True)
class StatusOperation:
    """GET /deployment/status/{app}"""


@dataclass(frozen=True)
class LogsOperation:
    """GET /deployment/logs/{app}?lines=N"""
    lines: int


@dataclass(frozen=True)
class NamedActionOperation:
    """POST /deployment/execute for anything outside the known verbs"""
    action: str
    lines: Optional[int] = None


Operation = Union[LifecycleOperation, StatusOperation, LogsOperation, NamedActionOperation]


def resolve_operation(action_id: str, lines: Optional[int] = None) -> Operation:
    try:
        action = LifecycleAction(action_id)
    except ValueError:
        return NamedActionOperation(action=action_id, lines=lines)

    if action == LifecycleAction.STATUS:
        return StatusOperation()
    if action == LifecycleAction.LOGS:
        return LogsOperation(lines=lines if lines is not None else config.DEFAULT_LOG_LINES)
    return LifecycleOperation(action=action)


def run_operation(client: DeploymentClient, operation: Operation, application_name: str) -> Any:
    if isinstance(operation, LifecycleOperation):
        return client.run_lifecycle(operation.action.value, application_name)
    if isinstance(operation, StatusOperation):
        return client.get_status(application_name)
    if isinstance(operation, LogsOperation):
        return client.get_logs(application_name, operation.lines)
    if isinstance(operation, NamedActionOperation):
        return client.execute_action(application_name, operation.action, operation.lines)
    raise TypeError(f"Unsupported operation: {operation!r}")


# ============================================================================
# RESULT RENDERING
# ============================================================================

def extract_logs(payload: Any) -> str:
    """
    Pull displayable log text out of a logs response.

    Precedence: data.logs.stdout, data.logs (text), data.stdout, then
    "No logs available".
    """
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, dict):
        return NO_LOGS_TEXT

    logs = data.get("logs")
    if isinstance(logs, dict) and logs.get("stdout"):
        return str(logs["stdout"])
    if isinstance(logs, str) and logs:
        return logs
    if data.get("stdout"):
        return str(data["stdout"])
    return NO_LOGS_TEXT


def format_status(payload: Any) -> str:
    """Pretty-print `data`, or the whole response when there is none"""
    body = payload.get("data") if isinstance(payload, dict) else None
    return json.dumps(body or payload, indent=2, default=str)


def action_title(action_id: str, succeeded: bool) -> str:
    label = action_id[:1].upper() + action_id[1:]
    return f"{label} {'Complete' if succeeded else 'Failed'}"


def error_message(error: Exception) -> str:
    """Embedded error body message, then the exception text, then a fixed fallback"""
    remote = getattr(error, "remote_message", None)
    if remote:
        return remote
    return str(error) or UNKNOWN_ERROR_TEXT


@dataclass(frozen=True)
class ActionOutcome:
    application_name: str
    action_id: str
    kind: OutcomeKind
    title: str
    message: str
    response: Optional[DeploymentResponse] = None
    logs_text: Optional[str] = None
    status_text: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.kind == OutcomeKind.SUCCEEDED


def action_key(application_name: str, action_id: str) -> str:
    return f"{application_name}:{action_id}"


# ============================================================================
# DISPATCHER
# ============================================================================

class ActionDispatcher:
    """
    Single owner of the in-flight action set.

    Args:
        client: Deployer REST client
        recheck: Called with the application name after every action
        notify: Receives one Notification per finished action
        on_outcome: Receives the ActionOutcome of every finished action
    """

    def __init__(
        self,
        client: DeploymentClient,
        recheck: Optional[Callable[[str], Any]] = None,
        notify: Optional[Callable[[Notification], None]] = None,
        on_outcome: Optional[Callable[[ActionOutcome], None]] = None,
        max_workers: int = config.ACTION_WORKERS,
        executor: Optional[Executor] = None,
    ):
        self.client = client
        self.recheck = recheck
        self.notify = notify
        self.on_outcome = on_outcome

        self._lock = threading.Lock()
        self._active: Set[str] = set()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="hub-action"
        )

    def is_active(self, application_name: str, action_id: str) -> bool:
        with self._lock:
            return action_key(application_name, action_id) in self._active

    def active_keys(self) -> List[str]:
        with self._lock:
            return sorted(self._active)

    def execute(
        self,
        application: Optional[ApplicationConfig],
        action_id: str,
        lines: Optional[int] = None,
    ) -> Optional[ActionOutcome]:
        """
        Run one action and block until it finishes.

        Returns:
            The outcome, or None when no application is selected or the same
            (application, action) is already in flight.
        """
        key = self._claim(application, action_id)
        if key is None:
            return None
        return self._run(application, action_id, lines, key)

    def submit(
        self,
        application: Optional[ApplicationConfig],
        action_id: str,
        lines: Optional[int] = None,
    ) -> Optional["Future[ActionOutcome]"]:
        """Same as execute() but runs on the dispatcher's worker pool"""
        key = self._claim(application, action_id)
        if key is None:
            return None
        try:
            return self._executor.submit(self._run, application, action_id, lines, key)
        except RuntimeError as e:
            logger.error(f"Cannot schedule {key}: {e}")
            self._release(key)
            return None

    def shutdown(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    def _claim(self, application: Optional[ApplicationConfig], action_id: str) -> Optional[str]:
        if application is None:
            logger.debug(f"Ignoring '{action_id}': no application selected")
            return None
        key = action_key(application.name, action_id)
        with self._lock:
            if key in self._active:
                logger.info(f"Action {key} already in progress, ignoring")
                return None
            self._active.add(key)
        return key

    def _release(self, key: str) -> None:
        with self._lock:
            self._active.discard(key)

    def _run(self, application: ApplicationConfig, action_id: str, lines: Optional[int], key: str) -> ActionOutcome:
        name = application.name
        logger.info(f"Running {action_id} for {name}")
        try:
            outcome = self._perform(name, action_id, lines)
        except Exception as e:
            # run_operation or rendering blew up in an unexpected way
            logger.error(f"Action {key} crashed: {e}", exc_info=True)
            outcome = ActionOutcome(
                application_name=name,
                action_id=action_id,
                kind=OutcomeKind.TRANSPORT_ERROR,
                title=action_title(action_id, False),
                message=str(e) or UNKNOWN_ERROR_TEXT,
            )
        finally:
            self._release(key)

        self._publish(outcome)
        self._recheck(name)
        return outcome

    def _perform(self, name: str, action_id: str, lines: Optional[int]) -> ActionOutcome:
        operation = resolve_operation(action_id, lines)
        try:
            payload = run_operation(self.client, operation, name)
            response = DeploymentResponse.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"{action_id} for {name} returned an unexpected body: {e.error_count()} error(s)")
            return ActionOutcome(
                application_name=name,
                action_id=action_id,
                kind=OutcomeKind.TRANSPORT_ERROR,
                title=action_title(action_id, False),
                message=f"Unexpected response from {action_id}",
            )
        except Exception as e:
            message = error_message(e)
            logger.warning(f"{action_id} for {name} failed: {message}")
            return ActionOutcome(
                application_name=name,
                action_id=action_id,
                kind=OutcomeKind.TRANSPORT_ERROR,
                title=action_title(action_id, False),
                message=message,
            )

        message = response.message or ""
        if not response.success:
            logger.warning(f"{action_id} for {name} reported failure: {message}")
            return ActionOutcome(
                application_name=name,
                action_id=action_id,
                kind=OutcomeKind.REMOTE_FAILURE,
                title=action_title(action_id, False),
                message=message,
                response=response,
            )

        logs_text = extract_logs(payload) if isinstance(operation, LogsOperation) else None
        status_text = format_status(payload) if isinstance(operation, StatusOperation) else None
        logger.info(f"{action_id} for {name} succeeded: {message}")
        return ActionOutcome(
            application_name=name,
            action_id=action_id,
            kind=OutcomeKind.SUCCEEDED,
            title=action_title(action_id, True),
            message=message,
            response=response,
            logs_text=logs_text,
            status_text=status_text,
        )

    def _publish(self, outcome: ActionOutcome) -> None:
        level = NotificationLevel.SUCCESS if outcome.succeeded else NotificationLevel.ERROR
        notification = Notification(level=level, title=outcome.title, message=outcome.message)
        for callback, arg in ((self.notify, notification), (self.on_outcome, outcome)):
            if callback is None:
                continue
            try:
                callback(arg)
            except Exception:
                logger.exception(f"Outcome listener failed for {outcome.action_id}")

    def _recheck(self, name: str) -> None:
        if self.recheck is None:
            return
        try:
            self.recheck(name)
        except Exception as e:
            logger.warning(f"Live status re-check for {name} failed: {e}")

"""
One-shot REST clients for the AdminHub API.

DeploymentClient covers /deployment/*, ServerClient covers /server/*.
Every request carries the bearer token from the injected provider; with no
token the call fails with Unauthenticated before touching the network.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

import requests
from pydantic import ValidationError

from hub.models import ApplicationConfig, RunningService, ServerHealthSummary
from shared.errors import ProtocolError, TransportError, Unauthenticated

logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Optional[str]]

LIFECYCLE_VERBS = ("checkout", "build", "verify", "deploy", "restart", "stop", "full-deploy")


class ApiClient:
    """Base client: URL building, auth header, error mapping"""

    prefix = ""

    def __init__(
        self,
        base_url: str,
        token_provider: TokenProvider,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout
        self._session = session or requests.Session()

    def url(self, path: str) -> str:
        return f"{self.base_url}{self.prefix}{path}"

    def current_token(self) -> Optional[str]:
        return self.token_provider()

    def close(self) -> None:
        self._session.close()

    def call_api(self, method: str, path: str, **kwargs) -> Any:
        """
        Perform one request and return the decoded JSON body.

        Raises:
            Unauthenticated: If no token is available
            TransportError: On network errors or non-2xx responses
        """
        token = self.token_provider()
        if not token:
            raise Unauthenticated(f"No credential available for {method} {path}")

        url = self.url(path)
        try:
            resp = self._session.request(
                method,
                url,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError:
            payload = {"raw": resp.text}

        if 200 <= resp.status_code < 300:
            return payload

        if isinstance(payload, dict):
            error = payload.get("message") or payload.get("error") or payload.get("raw")
        else:
            error = str(payload)
        raise TransportError(f"HTTP {resp.status_code}: {error}", status_code=resp.status_code, payload=payload)


class DeploymentClient(ApiClient):
    prefix = "/deployment"

    HEALTH_STREAM_PATH = "/health/stream"

    def stream_url(self) -> str:
        return self.url(self.HEALTH_STREAM_PATH)

    def get_health(self) -> Dict[str, Any]:
        return self.call_api("GET", "/health")

    def get_applications(self) -> List[ApplicationConfig]:
        payload = self.call_api("GET", "/applications")
        if not isinstance(payload, list):
            raise ProtocolError(f"Expected application list, got {type(payload).__name__}")
        try:
            return [ApplicationConfig.model_validate(item) for item in payload]
        except ValidationError as e:
            raise ProtocolError(f"Invalid application config: {e}") from e

    def run_lifecycle(self, verb: str, application_name: str) -> Dict[str, Any]:
        """POST /deployment/{verb}/{app} for checkout, build, verify, deploy, restart, stop, full-deploy"""
        if verb not in LIFECYCLE_VERBS:
            raise ValueError(f"Unknown lifecycle verb: {verb}")
        return self.call_api("POST", f"/{verb}/{application_name}", json={})

    def get_status(self, application_name: str) -> Dict[str, Any]:
        return self.call_api("GET", f"/status/{application_name}")

    def get_logs(self, application_name: str, lines: int = 100) -> Dict[str, Any]:
        return self.call_api("GET", f"/logs/{application_name}", params={"lines": str(lines)})

    def execute_action(self, application_name: str, action: str, lines: Optional[int] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"applicationName": application_name, "action": action}
        if lines is not None:
            body["lines"] = lines
        return self.call_api("POST", "/execute", json=body)

    def check_app_live_status(self, application_name: str) -> Dict[str, Any]:
        return self.call_api("GET", f"/applications/{application_name}/health")


class ServerClient(ApiClient):
    prefix = "/server"

    HEALTH_STREAM_PATH = "/health/stream"

    def stream_url(self) -> str:
        return self.url(self.HEALTH_STREAM_PATH)

    def get_running_services(self) -> List[RunningService]:
        payload = self.call_api("GET", "/services/status")
        if not isinstance(payload, list):
            raise ProtocolError(f"Expected service list, got {type(payload).__name__}")
        try:
            return [RunningService.model_validate(item) for item in payload]
        except ValidationError as e:
            raise ProtocolError(f"Invalid running service entry: {e}") from e

    def get_server_health_summary(self) -> ServerHealthSummary:
        payload = self.call_api("GET", "/health/summary")
        try:
            return ServerHealthSummary.model_validate(payload)
        except ValidationError as e:
            raise ProtocolError(f"Invalid server health summary: {e}") from e

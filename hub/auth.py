"""
Auth session for the AdminHub API.

Holds the bearer token issued by POST /auth/login in memory for the lifetime
of the process. Nothing is written to disk.
"""

import logging
import threading
from typing import Optional

import requests
from pydantic import BaseModel, ConfigDict, ValidationError

from shared.errors import ProtocolError, TransportError

logger = logging.getLogger(__name__)


class AuthResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    token: str
    type: str = "Bearer"
    name: Optional[str] = None
    email: Optional[str] = None


class AuthSession:
    """
    Token provider shared by every client of one hub process.

    Usage:
        auth = AuthSession("http://localhost:8089/api")
        auth.login("admin@example.com", "secret")
        client = DeploymentClient(base_url, token_provider=auth.token)
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._lock = threading.Lock()
        self._token = token
        self._user: Optional[AuthResponse] = None

    def token(self) -> Optional[str]:
        with self._lock:
            return self._token

    @property
    def current_user(self) -> Optional[AuthResponse]:
        with self._lock:
            return self._user

    def is_authenticated(self) -> bool:
        return bool(self.token())

    def login(self, email: str, password: str) -> AuthResponse:
        """
        Exchange credentials for a bearer token.

        Raises:
            TransportError: On network errors or a rejected login
            ProtocolError: If the response carries no token
        """
        url = f"{self.base_url}/auth/login"
        try:
            response = requests.post(
                url, json={"email": email, "password": password}, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise TransportError(f"Login request failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Login failed for {email}: HTTP {response.status_code}")
            raise TransportError(
                f"Login failed: HTTP {response.status_code}", status_code=response.status_code
            )

        try:
            auth = AuthResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ProtocolError(f"Login response missing token: {e}") from e

        with self._lock:
            self._token = auth.token
            self._user = auth
        logger.info(f"Logged in as {auth.name or email}")
        return auth

    def logout(self) -> None:
        with self._lock:
            self._token = None
            self._user = None
        logger.info("Logged out")

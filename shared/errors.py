"""
Error taxonomy for AdminHub clients.

Unauthenticated and TransportError are raised by network-facing code.
ProtocolError marks a payload that could not be decoded; callers log it and
carry on with the next message.
"""

from typing import Any, Optional


class HubError(Exception):
    """Base class for all AdminHub client errors"""


class Unauthenticated(HubError):
    """No bearer credential available; raised before any network call"""


class TransportError(HubError):
    """
    Network or HTTP failure.

    Args:
        message: Human readable description
        status_code: HTTP status when the server answered with a non-2xx code
        payload: Decoded error body, if any
    """

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def remote_message(self) -> Optional[str]:
        """The `message` field embedded in the error body, if the server sent one"""
        if isinstance(self.payload, dict):
            message = self.payload.get("message")
            if message:
                return str(message)
        return None


class ProtocolError(HubError):
    """Malformed event or response payload"""

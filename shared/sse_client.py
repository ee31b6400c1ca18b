"""
Event Stream Client

Opens a long-lived authenticated HTTP connection to an SSE endpoint and turns
the byte stream into StreamEvent objects.

Wire format:
    event: health
    data: {"healthy": true}
    id: 1718000000000
    <blank line>

Each connection runs in its own daemon thread. The client never retries;
reconnect and fallback decisions belong to the caller.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

import requests

from shared.errors import ProtocolError, TransportError, Unauthenticated

logger = logging.getLogger(__name__)

EVENT_DELIMITER = b"\n\n"


@dataclass(frozen=True)
class StreamEvent:
    type: str
    data: Any
    id: Optional[str] = None


def parse_event_block(block: str) -> Optional[StreamEvent]:
    """
    Parse one delimited block into a StreamEvent.

    Returns None when the block lacks either `event` or `data`.

    Raises:
        ProtocolError: If the data payload is not valid JSON
    """
    event_name = None
    data_lines: List[str] = []
    event_id = None

    for line in block.split("\n"):
        if line.startswith("event:"):
            event_name = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].strip())
        elif line.startswith("id:"):
            event_id = line[len("id:"):].strip()

    if not event_name or not data_lines:
        return None

    raw = "\n".join(data_lines)
    try:
        payload = json.loads(raw)
    except ValueError as e:
        raise ProtocolError(f"Invalid JSON in '{event_name}' event: {e}") from e

    return StreamEvent(type=event_name, data=payload, id=event_id)


class EventStreamDecoder:
    """
    Incremental decoder: feed raw bytes, get complete events back.

    Bytes are buffered until a blank line closes a block, so multi-byte
    characters split across chunks decode correctly. A malformed block is
    logged and skipped.
    """

    def __init__(self):
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> List[StreamEvent]:
        if not chunk:
            return []
        self._buffer.extend(chunk.replace(b"\r\n", b"\n"))

        events = []
        while True:
            idx = self._buffer.find(EVENT_DELIMITER)
            if idx < 0:
                break
            block = bytes(self._buffer[:idx])
            del self._buffer[:idx + len(EVENT_DELIMITER)]
            event = self._decode(block)
            if event is not None:
                events.append(event)
        return events

    def flush(self) -> List[StreamEvent]:
        """Best-effort parse of whatever is left after the remote closed"""
        if not self._buffer.strip():
            self._buffer.clear()
            return []
        block = bytes(self._buffer)
        self._buffer.clear()
        event = self._decode(block)
        return [event] if event is not None else []

    def _decode(self, block: bytes) -> Optional[StreamEvent]:
        try:
            return parse_event_block(block.decode("utf-8", errors="replace"))
        except ProtocolError as e:
            logger.warning(f"Skipping malformed stream event: {e}")
            return None


class StreamHandle:
    """
    Cancellation token for one stream connection.

    cancel() is idempotent and aborts the underlying transport. Once cancelled,
    no further callbacks are made for this connection. A read already blocked
    on a silent peer returns when the client's read_timeout elapses.
    """

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        self._lock = threading.Lock()
        self._cancelled = False
        self._response: Optional[requests.Response] = None
        self.thread: Optional[threading.Thread] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            response = self._response
        logger.debug(f"Cancelling stream {self.endpoint}")
        if response is not None:
            response.close()

    def _attach(self, response: requests.Response) -> bool:
        """Register the live response; returns False if cancel() already happened"""
        with self._lock:
            if self._cancelled:
                return False
            self._response = response
            return True


class EventStreamClient:
    """
    Client for SSE endpoints.

    Usage:
        client = EventStreamClient()
        handle = client.open(
            "http://localhost:8089/api/deployment/health/stream",
            token,
            on_event=lambda event: print(event.type, event.data),
            on_error=lambda err: print("stream failed:", err),
        )
        ...
        handle.cancel()
    """

    def __init__(
        self,
        session_factory: Callable[[], requests.Session] = requests.Session,
        connect_timeout: float = 10.0,
        read_timeout: Optional[float] = None,
        chunk_size: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.chunk_size = chunk_size

    def open(
        self,
        endpoint: str,
        auth_token: Optional[str],
        on_event: Callable[[StreamEvent], None],
        on_error: Callable[[Exception], None],
        on_open: Optional[Callable[[], None]] = None,
        on_complete: Optional[Callable[[], None]] = None,
    ) -> StreamHandle:
        """
        Start streaming in a background thread.

        Args:
            endpoint: Absolute URL of the SSE endpoint
            auth_token: Bearer credential
            on_event: Called for every decoded event
            on_error: Called at most once on transport failure (never for cancel)
            on_open: Called once the server answered with a 2xx status
            on_complete: Called when the server closed the stream normally

        A peer that stays silent longer than read_timeout is reported through
        on_error like any other transport failure.

        Raises:
            Unauthenticated: If auth_token is empty; no connection is attempted
        """
        if not auth_token:
            raise Unauthenticated(f"No credential available for stream {endpoint}")

        handle = StreamHandle(endpoint)
        thread = threading.Thread(
            target=self._run,
            args=(handle, auth_token, on_event, on_error, on_open, on_complete),
            name="sse-stream",
            daemon=True,
        )
        handle.thread = thread
        thread.start()
        return handle

    def _run(self, handle, auth_token, on_event, on_error, on_open, on_complete):
        session = self.session_factory()
        response = None
        try:
            response = session.get(
                handle.endpoint,
                headers={
                    "Authorization": f"Bearer {auth_token}",
                    "Accept": "text/event-stream",
                    "Cache-Control": "no-cache",
                },
                stream=True,
                timeout=(self.connect_timeout, self.read_timeout),
            )
            if not handle._attach(response):
                return
            if response.status_code < 200 or response.status_code >= 300:
                raise TransportError(
                    f"HTTP {response.status_code} opening stream {handle.endpoint}",
                    status_code=response.status_code,
                )

            logger.info(f"Stream connected: {handle.endpoint}")
            self._notify(handle, on_open)

            decoder = EventStreamDecoder()
            for chunk in response.iter_content(chunk_size=self.chunk_size):
                if handle.cancelled:
                    return
                for event in decoder.feed(chunk):
                    self._emit(handle, on_event, event)

            if handle.cancelled:
                return
            for event in decoder.flush():
                self._emit(handle, on_event, event)

            logger.info(f"Stream closed by remote: {handle.endpoint}")
            self._notify(handle, on_complete)

        except Exception as e:
            if handle.cancelled:
                logger.debug(f"Stream {handle.endpoint} aborted after cancel: {e}")
                return
            if not isinstance(e, TransportError):
                e = TransportError(f"Stream {handle.endpoint} failed: {e}")
            logger.warning(str(e))
            on_error(e)
        finally:
            if response is not None:
                response.close()
            session.close()

    def _emit(self, handle: StreamHandle, on_event, event: StreamEvent) -> None:
        if handle.cancelled:
            return
        try:
            on_event(event)
        except Exception:
            logger.exception(f"Stream event handler failed for '{event.type}'")

    def _notify(self, handle: StreamHandle, callback) -> None:
        if callback is None or handle.cancelled:
            return
        try:
            callback()
        except Exception:
            logger.exception(f"Stream lifecycle callback failed for {handle.endpoint}")

"""
Live deployment logs over Server-Sent Events.

Two layers:

- :class:`SSEStreamer` is the streaming primitive.  It reads
  ``/api/deployments/{id}/events`` on a background thread, dispatches
  every ``data:`` payload, and reconnects by itself after a dropped
  connection (honouring the server's ``retry:`` hint), the way a
  browser ``EventSource`` does.
- :class:`LogStreamClient` owns the single live stream of the console
  and the log panel it renders into.  ``attach`` always closes the
  previous stream first; events from a closed stream are ignored.

Wire format (text/event-stream)::

    : connected

    data: {"time":"12:00:01","level":"info","text":"stopping service"}

"""

from __future__ import annotations

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol
from urllib.parse import quote

import requests

from deployconsole.core.errors import TransportError
from deployconsole.core.models.deployment import LogEvent

logger = logging.getLogger(__name__)

MessageCallback = Callable[[str], None]
ErrorCallback = Callable[[Exception | None], None]

# Scrollback kept by the log panel
DEFAULT_MAX_LINES = 5000


# ── Streaming primitive ─────────────────────────────────────────────


class StreamHandle(Protocol):
    def close(self) -> None: ...


class Streamer(Protocol):
    """Opens one push stream per deployment id."""

    def open(
        self,
        deployment_id: str,
        on_message: MessageCallback,
        on_error: ErrorCallback,
    ) -> StreamHandle: ...


def iter_sse_events(lines):
    """Group raw SSE lines into ``(event_id, retry_ms, data)`` tuples.

    ``data`` is None for blocks that carry no data (e.g. a bare
    ``retry:``).  Comment lines (``: ping``) are skipped.  A block cut off
    before its terminating blank line is discarded.
    """
    data: list[str] = []
    event_id = ""
    retry: int | None = None
    for raw in lines:
        line = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
        line = line.rstrip("\r")
        if not line:
            if data or retry is not None:
                yield event_id, retry, "\n".join(data) if data else None
            data, retry = [], None
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            data.append(value)
        elif name == "id":
            event_id = value
        elif name == "retry" and value.isdigit():
            retry = int(value)


class SSEConnection:
    """One logical stream; reconnects until closed."""

    def __init__(
        self,
        api,
        path: str,
        on_message: MessageCallback,
        on_error: ErrorCallback,
        *,
        retry: float = 3.0,
    ) -> None:
        self._api = api
        self._path = path
        self._on_message = on_message
        self._on_error = on_error
        self._retry = retry
        self._closed = threading.Event()
        self._response: requests.Response | None = None
        self._last_event_id = ""
        self._thread = threading.Thread(target=self._run, name=f"sse:{path}", daemon=True)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def start(self) -> SSEConnection:
        self._thread.start()
        return self

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        resp = self._response
        if resp is not None:
            resp.close()
        logger.debug("Closed stream %s", self._path)

    def _run(self) -> None:
        while not self._closed.is_set():
            try:
                resp = self._api.open_stream(self._path, last_event_id=self._last_event_id)
            except TransportError as e:
                if self._closed.is_set():
                    return
                self._on_error(e)
                self._closed.wait(self._retry)
                continue

            self._response = resp
            if self._closed.is_set():
                # close() ran while the request was in flight
                resp.close()
                self._response = None
                return
            if resp.status_code != 200:
                # EventSource gives up on a non-200 answer
                logger.warning("Stream %s refused with HTTP %d", self._path, resp.status_code)
                resp.close()
                if not self._closed.is_set():
                    self._on_error(None)
                return

            try:
                for event_id, retry_ms, data in iter_sse_events(resp.iter_lines()):
                    if self._closed.is_set():
                        return
                    if event_id:
                        self._last_event_id = event_id
                    if retry_ms is not None:
                        self._retry = retry_ms / 1000
                    if data is not None:
                        self._on_message(data)
                error: Exception | None = None
            except (requests.RequestException, OSError, AttributeError) as e:
                # AttributeError: urllib3 drops its socket when closed mid-read
                error = e
            finally:
                resp.close()
                self._response = None

            if self._closed.is_set():
                return
            logger.info("Stream %s dropped, reconnecting in %.1fs", self._path, self._retry)
            self._on_error(error)
            self._closed.wait(self._retry)


class SSEStreamer:
    """Streamer backed by the deployment events endpoint."""

    def __init__(self, api, *, retry: float = 3.0) -> None:
        self._api = api
        self._retry = retry

    def open(
        self,
        deployment_id: str,
        on_message: MessageCallback,
        on_error: ErrorCallback,
    ) -> SSEConnection:
        path = f"/api/deployments/{quote(deployment_id, safe='')}/events"
        return SSEConnection(
            self._api, path, on_message, on_error, retry=self._retry
        ).start()


# ── Log rendering ───────────────────────────────────────────────────


@dataclass(frozen=True)
class LogLine:
    """A rendered log line.  ``level`` is None for unparsed payloads."""

    text: str
    level: str | None = "info"


def parse_log_line(data: str) -> LogLine:
    """Render one event payload.  Unparseable payloads are kept verbatim."""
    try:
        payload = json.loads(data)
    except ValueError:
        return LogLine(data, None)
    if not isinstance(payload, dict) or not {"time", "level", "text"} & payload.keys():
        return LogLine(data, None)
    try:
        event = LogEvent.model_validate({k: str(v) for k, v in payload.items() if v is not None})
    except ValueError:
        return LogLine(data, None)
    return LogLine(f"[{event.time}] [{event.level}] {event.text}", event.level)


class LogPanel:
    """In-memory render target for log lines.

    Keeps the newest ``max_lines`` lines.  Listeners are called with
    ``None`` on clear and with each appended line.
    """

    def __init__(self, max_lines: int = DEFAULT_MAX_LINES) -> None:
        self._lock = threading.Lock()
        self._lines: deque[LogLine] = deque(maxlen=max_lines)
        self._listeners: list[Callable[[LogLine | None], None]] = []

    @property
    def lines(self) -> list[LogLine]:
        with self._lock:
            return list(self._lines)

    def subscribe(self, listener: Callable[[LogLine | None], None], *, replay: bool = False) -> None:
        """Register a listener; with ``replay`` it first receives the current lines."""
        with self._lock:
            if replay:
                for line in self._lines:
                    listener(line)
            self._listeners.append(listener)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()
            for listener in self._listeners:
                listener(None)

    def append(self, line: LogLine) -> None:
        with self._lock:
            self._lines.append(line)
            for listener in self._listeners:
                listener(line)


def _clock() -> str:
    return datetime.now().strftime("%H:%M:%S")


class LogStreamClient:
    """Keeps at most one live log stream, for the latest requested id.

    Args:
        streamer: Streaming primitive (reconnects on its own).
        panel: Render target (a fresh one if omitted).
        clock: Returns the local time label for status lines.
    """

    def __init__(
        self,
        streamer: Streamer,
        panel: LogPanel | None = None,
        *,
        clock: Callable[[], str] = _clock,
    ) -> None:
        self._streamer = streamer
        self.panel = panel or LogPanel()
        self._clock = clock
        self._lock = threading.RLock()
        self._stream: StreamHandle | None = None
        self._deployment_id: str | None = None
        self._generation = 0

    @property
    def deployment_id(self) -> str | None:
        return self._deployment_id

    @property
    def connected(self) -> bool:
        return self._stream is not None

    def attach(self, deployment_id: str) -> None:
        """Replace the current stream with one for ``deployment_id``."""
        if not deployment_id:
            return
        with self._lock:
            self._close_current()
            self._generation += 1
            generation = self._generation
            self._deployment_id = deployment_id
            self.panel.clear()
            self.panel.append(LogLine(f"[{self._clock()}] Connecting to log stream {deployment_id}..."))
            logger.info("Attaching log stream for %s", deployment_id)
            self._stream = self._streamer.open(
                deployment_id,
                lambda data: self._handle_message(generation, data),
                lambda error: self._handle_error(generation, error),
            )

    def close(self) -> None:
        with self._lock:
            self._close_current()
            self._generation += 1

    def _close_current(self) -> None:
        if self._stream is not None:
            logger.debug("Closing log stream for %s", self._deployment_id)
            self._stream.close()
            self._stream = None

    def _handle_message(self, generation: int, data: str) -> None:
        with self._lock:
            if generation != self._generation:
                logger.debug("Ignoring event from a replaced stream")
                return
            self.panel.append(parse_log_line(data))

    def _handle_error(self, generation: int, error: Exception | None) -> None:
        with self._lock:
            if generation != self._generation:
                return
            if error is not None:
                logger.debug("Log stream error for %s: %s", self._deployment_id, error)
            self.panel.append(
                LogLine(f"[{self._clock()}] Log connection interrupted, waiting to reconnect...", "warn")
            )

"""
HTTP transport — the only module that talks to the deployment service.

Wraps a ``requests.Session`` carrying the operator's session cookie.
Every call returns an :class:`ApiResponse` (any status code), or raises
:class:`TransportError` when no response was received at all.  Callers
decide what a non-2xx status means; the transport never retries.

Package uploads stream a multipart body from disk and report bytes as
they leave the process, which is what drives upload progress.
"""

from __future__ import annotations

import io
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping

import requests
from urllib3.fields import RequestField
from urllib3.filepost import choose_boundary

from deployconsole.core.errors import TransportError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

_CHUNK_SIZE = 64 * 1024


@dataclass
class ApiResponse:
    """Status + body of one completed request."""

    status: int
    text: str = ""
    _payload: Any = field(default=None, init=False, repr=False)
    _parsed: bool = field(default=False, init=False, repr=False)

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def unauthorized(self) -> bool:
        return self.status == 401

    def json(self) -> dict[str, Any] | None:
        """Body as a JSON object, or None if absent or not an object."""
        if not self._parsed:
            self._parsed = True
            try:
                payload = json.loads(self.text) if self.text.strip() else None
            except ValueError:
                payload = None
            self._payload = payload if isinstance(payload, dict) else None
        return self._payload

    def error_message(self, default: str) -> str:
        """The body's ``error`` field, or ``default``."""
        payload = self.json() or {}
        error = payload.get("error")
        return str(error) if error else default


class MultipartBody(io.RawIOBase):
    """Streaming ``multipart/form-data`` body with one file part.

    Form fields are rendered up front; the file is read from disk in
    chunks as the transport consumes the body.  ``on_progress`` receives
    ``(bytes_sent, total_bytes)`` after every read.
    """

    def __init__(
        self,
        fields: Mapping[str, str],
        file_field: str,
        file_path: Path,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        super().__init__()
        self.boundary = choose_boundary()
        self.content_type = f"multipart/form-data; boundary={self.boundary}"

        head = io.BytesIO()
        for name, value in fields.items():
            part = RequestField(name=name, data=value)
            part.make_multipart()
            head.write(self._part_header(part))
            head.write(str(value).encode("utf-8"))
            head.write(b"\r\n")

        file_part = RequestField(name=file_field, data=b"", filename=file_path.name)
        file_part.make_multipart(content_type="application/octet-stream")
        head.write(self._part_header(file_part))

        tail = f"\r\n--{self.boundary}--\r\n".encode("ascii")
        file_size = file_path.stat().st_size

        self._segments: list[Any] = [
            io.BytesIO(head.getvalue()),
            open(file_path, "rb"),  # noqa: SIM115
            io.BytesIO(tail),
        ]
        self._index = 0
        self._sent = 0
        self.len = len(head.getvalue()) + file_size + len(tail)
        self._on_progress = on_progress

    def _part_header(self, part: RequestField) -> bytes:
        return f"--{self.boundary}\r\n".encode("ascii") + part.render_headers().encode("utf-8")

    def __len__(self) -> int:
        return self.len

    def readable(self) -> bool:
        return True

    def tell(self) -> int:
        # requests sizes stream bodies as len() - tell()
        return self._sent

    def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = self.len
        out = bytearray()
        while len(out) < size and self._index < len(self._segments):
            chunk = self._segments[self._index].read(min(size - len(out), _CHUNK_SIZE))
            if not chunk:
                self._index += 1
                continue
            out.extend(chunk)
        if out:
            self._sent += len(out)
            if self._on_progress is not None:
                self._on_progress(self._sent, self.len)
        return bytes(out)

    def close(self) -> None:
        for segment in self._segments:
            segment.close()
        super().close()


class ApiClient:
    """Session-bound client for the deployment service's HTTP surface.

    Args:
        base_url: Server root, e.g. ``http://10.0.0.5:8080``.
        session_cookie: Name of the session cookie.
        session_token: Session cookie value (empty: anonymous).
        timeout: Per-request timeout in seconds.
        session: Pre-built ``requests.Session`` (tests, custom adapters).
    """

    def __init__(
        self,
        base_url: str,
        *,
        session_cookie: str = "updater_session",
        session_token: str = "",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if session_token:
            self.session.cookies.set(session_cookie, session_token)

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    # ── Requests ────────────────────────────────────────────────

    def get(self, path: str, params: Mapping[str, Any] | None = None) -> ApiResponse:
        return self._send("GET", path, params=params)

    def delete(self, path: str) -> ApiResponse:
        return self._send("DELETE", path)

    def post(self, path: str, data: Mapping[str, str] | None = None) -> ApiResponse:
        """POST an urlencoded form."""
        return self._send("POST", path, data=dict(data or {}))

    def post_form(self, path: str, fields: Mapping[str, str]) -> ApiResponse:
        """POST a multipart form without files."""
        files = {name: (None, str(value)) for name, value in fields.items()}
        return self._send("POST", path, files=files)

    def upload(
        self,
        path: str,
        fields: Mapping[str, str],
        package: Path,
        *,
        file_field: str = "package",
        on_progress: ProgressCallback | None = None,
    ) -> ApiResponse:
        """POST a multipart form with one streamed file part."""
        try:
            body = MultipartBody(fields, file_field, package, on_progress)
        except OSError as e:
            raise TransportError(f"Cannot read {package}: {e}", url=self.url(path)) from e
        logger.debug("Uploading %s (%d bytes) to %s", package.name, body.len, path)
        try:
            return self._send(
                "POST",
                path,
                data=body,
                headers={"Content-Type": body.content_type, "Content-Length": str(body.len)},
            )
        finally:
            body.close()

    def open_stream(self, path: str, *, last_event_id: str = "") -> requests.Response:
        """Open a long-lived ``text/event-stream`` response.

        Only the connect phase is bounded by ``timeout``; reads block
        until the server pushes or the connection drops.
        """
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        if last_event_id:
            headers["Last-Event-ID"] = last_event_id
        url = self.url(path)
        try:
            return self.session.get(url, headers=headers, stream=True, timeout=(self.timeout, None))
        except requests.RequestException as e:
            raise TransportError(f"Cannot open stream {url}: {e}", url=url) from e

    def _send(self, method: str, path: str, **kwargs: Any) -> ApiResponse:
        url = self.url(path)
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.info("%s %s failed: %s", method, path, e)
            raise TransportError(f"{method} {url} failed: {e}", url=url) from e
        logger.debug("%s %s → %d", method, path, resp.status_code)
        return ApiResponse(status=resp.status_code, text=resp.text)

"""
Upload workflow — submit a deployment package and follow it.

States:
    IDLE → VALIDATING → UPLOADING → COMPLETED
                     ↘ IDLE (validation failed, nothing sent)
                                  ↘ FAILED → IDLE

Validation runs before any request.  Progress is a monotonic 0–100
integer; 100 is only ever reported once the server accepted the upload.
On success the log stream attaches to the new deployment and the
config cache is refreshed silently for the same project (the server may
have bumped its version).
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Callable

from deployconsole.core.errors import TransportError
from deployconsole.core.models.project import normalize_replace_mode
from deployconsole.core.services.versioning import is_valid_version

logger = logging.getLogger(__name__)

MSG_NO_PACKAGE = "Select a package file"
MSG_NO_PROJECT = "Select a project"
MSG_BAD_VERSION = "Invalid version format, expected MAJOR.MINOR.PATCH (e.g. 0.0.2 / 0.1.1 / 1.0.1)"
MSG_UPLOADING = "Uploading..."
MSG_NETWORK = "Network error, upload failed"


class UploadState(StrEnum):
    """Upload pipeline states."""

    IDLE = "idle"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    FAILED = "failed"


# ── Progress channel ────────────────────────────────────────────────


def progress_percent(loaded: int, total: int) -> int | None:
    """Floor percentage of ``loaded/total`` clamped to 0..100.

    None when the total is unknown.
    """
    if total <= 0:
        return None
    return max(0, min(100, math.floor(loaded * 100 / total)))


@dataclass(frozen=True)
class ProgressEvent:
    percent: int
    done: bool = False
    failed: bool = False


class ProgressChannel:
    """Monotonic transfer progress; 100 is reserved for completion."""

    def __init__(self, listener: Callable[[ProgressEvent], None] | None = None) -> None:
        self._listener = listener
        self.percent = 0
        self.finished = False

    def reset(self) -> None:
        self.percent = 0
        self.finished = False
        self._emit(ProgressEvent(0))

    def update(self, loaded: int, total: int) -> None:
        if self.finished:
            return
        percent = progress_percent(loaded, total)
        if percent is None:
            return
        percent = min(percent, 99)
        if percent > self.percent:
            self.percent = percent
            self._emit(ProgressEvent(percent))

    def complete(self) -> None:
        self.percent = 100
        self.finished = True
        self._emit(ProgressEvent(100, done=True))

    def fail(self) -> None:
        self.finished = True
        self._emit(ProgressEvent(self.percent, failed=True))

    def _emit(self, event: ProgressEvent) -> None:
        if self._listener is not None:
            self._listener(event)


def package_attached(package: Path | None) -> bool:
    return package is not None and Path(package).is_file()


# ── Form + outcome ──────────────────────────────────────────────────


@dataclass
class UploadForm:
    """What the operator filled in."""

    package: Path | None = None
    project_id: str = ""
    target_version: str = ""
    replace_mode: str = ""
    note: str = ""

    def reset(self) -> None:
        self.package = None
        self.project_id = ""
        self.target_version = ""
        self.replace_mode = ""
        self.note = ""


@dataclass
class UploadOutcome:
    ok: bool
    message: str
    state: UploadState
    deployment_id: str = ""
    project_id: str = ""
    project_name: str = ""
    version: str = ""
    status_code: int | None = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "message": self.message,
            "state": self.state.value,
            "deployment_id": self.deployment_id,
            "project_id": self.project_id,
            "project_name": self.project_name,
            "version": self.version,
            "status_code": self.status_code,
        }


# ── Workflow ────────────────────────────────────────────────────────


class UploadWorkflow:
    """Validate → upload with progress → reconcile.

    Args:
        api: Transport with ``upload``.
        store: ConfigStore (active project + post-upload refresh).
        logs: LogStreamClient to attach to the new deployment.
        history: Optional DeploymentHistory to refresh after upload.
        on_progress: Receives ProgressEvents.
        on_state: Receives every state transition.
        on_status: Receives operator-visible status messages.
    """

    def __init__(
        self,
        api,
        store,
        logs=None,
        *,
        history=None,
        on_progress: Callable[[ProgressEvent], None] | None = None,
        on_state: Callable[[UploadState], None] | None = None,
        on_status: Callable[[str], None] | None = None,
    ) -> None:
        self._api = api
        self._store = store
        self._logs = logs
        self._history = history
        self._on_state = on_state
        self._on_status = on_status
        self.progress = ProgressChannel(on_progress)
        self.state = UploadState.IDLE

    def resolve_project_id(self, form: UploadForm) -> str:
        return form.project_id.strip() or (self._store.active_project_id or "")

    def validate(self, form: UploadForm) -> str | None:
        """Pre-flight checks.  Returns an error message or None."""
        if not package_attached(form.package):
            return MSG_NO_PACKAGE
        if not self.resolve_project_id(form):
            return MSG_NO_PROJECT
        version = form.target_version.strip()
        if version and not is_valid_version(version):
            return MSG_BAD_VERSION
        return None

    def build_fields(self, form: UploadForm) -> dict[str, str]:
        fields = {"project_id": self.resolve_project_id(form)}
        if form.target_version.strip():
            fields["target_version"] = form.target_version.strip()
        if form.replace_mode.strip():
            fields["replace_mode"] = normalize_replace_mode(form.replace_mode)
        if form.note.strip():
            fields["note"] = form.note.strip()
        return fields

    def submit(self, form: UploadForm) -> UploadOutcome:
        self._set_state(UploadState.VALIDATING)
        error = self.validate(form)
        if error:
            self._set_state(UploadState.IDLE)
            return self._report(UploadOutcome(False, error, UploadState.IDLE))

        fields = self.build_fields(form)
        project_id = fields["project_id"]
        package = Path(form.package)  # validated above

        self._set_state(UploadState.UPLOADING)
        self.progress.reset()
        self._status(MSG_UPLOADING)
        logger.info("Uploading %s for project %s", package.name, project_id)

        try:
            resp = self._api.upload(
                "/api/upload", fields, package, on_progress=self.progress.update
            )
        except TransportError as e:
            logger.warning("Upload transport failure: %s", e)
            return self._fail(UploadOutcome(False, MSG_NETWORK, UploadState.FAILED))

        if not resp.ok:
            message = resp.error_message(f"Upload failed ({resp.status})")
            return self._fail(
                UploadOutcome(False, message, UploadState.FAILED, status_code=resp.status)
            )

        payload = resp.json() or {}
        self.progress.complete()
        outcome = UploadOutcome(
            True,
            "",
            UploadState.COMPLETED,
            deployment_id=str(payload.get("id") or ""),
            project_id=str(payload.get("project_id") or project_id),
            project_name=str(payload.get("project_name") or ""),
            version=str(payload.get("version") or ""),
            status_code=resp.status,
        )
        outcome.message = (
            f"Upload complete, deployment: {outcome.deployment_id or '-'}, "
            f"project: {outcome.project_name or outcome.project_id or '-'}, "
            f"target version: {outcome.version or '-'}"
        )
        self._report(outcome)

        if outcome.deployment_id and self._logs is not None:
            self._logs.attach(outcome.deployment_id)
        if self._history is not None:
            self._history.refresh()
        self._store.load(project_id, silent=True)
        form.reset()
        self._set_state(UploadState.COMPLETED)
        return outcome

    def _fail(self, outcome: UploadOutcome) -> UploadOutcome:
        self.progress.fail()
        self._set_state(UploadState.FAILED)
        self._report(outcome)
        self._set_state(UploadState.IDLE)
        return outcome

    def _report(self, outcome: UploadOutcome) -> UploadOutcome:
        self._status(outcome.message)
        return outcome

    def _status(self, message: str) -> None:
        if self._on_status is not None:
            self._on_status(message)

    def _set_state(self, state: UploadState) -> None:
        if state != self.state:
            logger.debug("Upload state %s → %s", self.state.value, state.value)
        self.state = state
        if self._on_state is not None:
            self._on_state(state)

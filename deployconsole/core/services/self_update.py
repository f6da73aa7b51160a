"""
Self-update workflow — replace the running service binary.

Same validation and progress contract as the package upload, but a 2xx
answer only means the replacement was queued.  The process that would
confirm the swap is the one being replaced, so after acceptance the
workflow polls ``/api/config`` every 2 seconds, at most 60 times.  The
first answer that is either a successful read or a 401 means a process
is listening again (a 401 is counted as "back" even though the session
did not survive).  On recovery the console reloads itself; once the
ceiling is reached it stops without doing anything else.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import Callable

from deployconsole.core.errors import TransportError
from deployconsole.core.reliability.recovery_poll import (
    DEFAULT_INTERVAL,
    DEFAULT_MAX_ATTEMPTS,
    PollOutcome,
    RecoveryPoller,
)
from deployconsole.core.services.upload import (
    MSG_BAD_VERSION,
    MSG_NETWORK,
    MSG_NO_PACKAGE,
    MSG_UPLOADING,
    ProgressChannel,
    ProgressEvent,
    package_attached,
)
from deployconsole.core.services.versioning import is_valid_version

logger = logging.getLogger(__name__)

MSG_STARTED = "Self-update started, the service will restart"
MSG_RECOVERED = "Service is back online, reloading"
MSG_GAVE_UP = "Service did not come back within the polling window"


class SelfUpdateState(StrEnum):
    """Self-update pipeline states."""

    IDLE = "idle"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    RECOVERING = "recovering"
    RECOVERED = "recovered"
    FAILED = "failed"


@dataclass
class SelfUpdateForm:
    package: Path | None = None
    target_version: str = ""
    note: str = ""

    def reset(self) -> None:
        self.package = None
        self.target_version = ""
        self.note = ""


@dataclass
class SelfUpdateOutcome:
    ok: bool
    message: str
    state: SelfUpdateState
    deployment_id: str = ""
    status_code: int | None = None
    poller: RecoveryPoller | None = None

    def to_dict(self) -> dict:
        return {
            "ok": self.ok,
            "message": self.message,
            "state": self.state.value,
            "deployment_id": self.deployment_id,
            "status_code": self.status_code,
        }


def service_alive(api) -> bool:
    """One recovery probe: True on a 2xx or 401 from ``/api/config``."""
    try:
        resp = api.get("/api/config")
    except TransportError:
        return False
    return resp.ok or resp.unauthorized


class SelfUpdateWorkflow:
    """Upload a service binary, then wait for the service to come back.

    Args:
        api: Transport with ``upload`` and ``get``.
        logs: LogStreamClient to attach to the self-update deployment.
        on_reload: Called once the service answers again.
        on_progress / on_state / on_status: Presentation hooks.
        poll_interval / max_attempts: Recovery poll schedule.
    """

    def __init__(
        self,
        api,
        logs=None,
        *,
        on_reload: Callable[[], None] | None = None,
        on_progress: Callable[[ProgressEvent], None] | None = None,
        on_state: Callable[[SelfUpdateState], None] | None = None,
        on_status: Callable[[str], None] | None = None,
        poll_interval: float = DEFAULT_INTERVAL,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._api = api
        self._logs = logs
        self._on_reload = on_reload
        self._on_state = on_state
        self._on_status = on_status
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.progress = ProgressChannel(on_progress)
        self.state = SelfUpdateState.IDLE
        self.poller: RecoveryPoller | None = None

    def validate(self, form: SelfUpdateForm) -> str | None:
        if not package_attached(form.package):
            return MSG_NO_PACKAGE
        version = form.target_version.strip()
        if version and not is_valid_version(version):
            return MSG_BAD_VERSION
        return None

    def submit(self, form: SelfUpdateForm) -> SelfUpdateOutcome:
        self._set_state(SelfUpdateState.VALIDATING)
        error = self.validate(form)
        if error:
            self._set_state(SelfUpdateState.IDLE)
            return self._report(SelfUpdateOutcome(False, error, SelfUpdateState.IDLE))

        fields: dict[str, str] = {}
        if form.target_version.strip():
            fields["target_version"] = form.target_version.strip()
        if form.note.strip():
            fields["note"] = form.note.strip()
        package = Path(form.package)

        self._set_state(SelfUpdateState.UPLOADING)
        self.progress.reset()
        self._status(MSG_UPLOADING)
        logger.info("Uploading self-update package %s", package.name)

        try:
            resp = self._api.upload(
                "/api/self-update", fields, package, on_progress=self.progress.update
            )
        except TransportError as e:
            logger.warning("Self-update transport failure: %s", e)
            return self._fail(SelfUpdateOutcome(False, MSG_NETWORK, SelfUpdateState.FAILED))

        if not resp.ok:
            message = resp.error_message(f"Upload failed ({resp.status})")
            return self._fail(
                SelfUpdateOutcome(False, message, SelfUpdateState.FAILED, status_code=resp.status)
            )

        payload = resp.json() or {}
        self.progress.complete()
        deployment_id = str(payload.get("id") or "")
        message = str(payload.get("message") or MSG_STARTED)
        if deployment_id:
            message = f"{message} (deployment: {deployment_id})"
        form.reset()

        if deployment_id and self._logs is not None:
            self._logs.attach(deployment_id)

        # One recovery poll at a time: the newest accepted update owns it
        self.cancel_recovery()
        self._set_state(SelfUpdateState.RECOVERING)
        poller = RecoveryPoller(
            probe=lambda: service_alive(self._api),
            interval=self.poll_interval,
            max_attempts=self.max_attempts,
        )
        self.poller = poller
        outcome = SelfUpdateOutcome(
            True,
            message,
            SelfUpdateState.RECOVERING,
            deployment_id=deployment_id,
            status_code=resp.status,
            poller=self.poller,
        )
        self._report(outcome)
        poller.start(
            on_recovered=lambda: self._recovered(poller),
            on_exhausted=lambda: self._gave_up(poller),
        )
        return outcome

    def cancel_recovery(self) -> None:
        if self.poller is not None and self.poller.outcome is None:
            logger.debug("Cancelling recovery poll after %d attempt(s)", self.poller.attempts)
            self.poller.cancel()

    def wait_for_recovery(self, timeout: float | None = None) -> PollOutcome | None:
        return self.poller.wait(timeout) if self.poller is not None else None

    def _recovered(self, poller: RecoveryPoller) -> None:
        if poller is not self.poller:
            return
        self._set_state(SelfUpdateState.RECOVERED)
        self._status(MSG_RECOVERED)
        if self._on_reload is not None:
            self._on_reload()

    def _gave_up(self, poller: RecoveryPoller) -> None:
        if poller is not self.poller:
            return
        self._status(MSG_GAVE_UP)
        self._set_state(SelfUpdateState.IDLE)

    def _fail(self, outcome: SelfUpdateOutcome) -> SelfUpdateOutcome:
        self.progress.fail()
        self._set_state(SelfUpdateState.FAILED)
        self._report(outcome)
        self._set_state(SelfUpdateState.IDLE)
        return outcome

    def _report(self, outcome: SelfUpdateOutcome) -> SelfUpdateOutcome:
        self._status(outcome.message)
        return outcome

    def _status(self, message: str) -> None:
        if self._on_status is not None:
            self._on_status(message)

    def _set_state(self, state: SelfUpdateState) -> None:
        if state != self.state:
            logger.debug("Self-update state %s → %s", self.state.value, state.value)
        self.state = state
        if self._on_state is not None:
            self._on_state(state)

"""
ConfigStore — the console's single source of truth for server config.

Holds the latest :class:`ConfigSnapshot` and the active project pointer.
Nothing else mutates either; other components read them or go through
``load`` / ``select_project`` / the write methods below.

Loads replace the snapshot wholesale.  Overlapping loads are not
serialized: each applies its own result when its response arrives, so
the last response to resolve wins.  Applying a result (swap snapshot,
resolve active id, derive and publish the view) happens under one lock,
so no surface ever observes a half-applied load.

Writes are fire-and-confirm: the cache is only refreshed, by a silent
``load``, after the server answers 2xx.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable
from urllib.parse import quote

from deployconsole.core.errors import TransportError
from deployconsole.core.models.project import Project
from deployconsole.core.models.system_config import SYSTEM_FIELDS, ConfigSnapshot
from deployconsole.core.services.project_sync import (
    ConsoleView,
    ProjectSync,
    derive_console_view,
    resolve_active_project_id,
    select_project_id,
)

logger = logging.getLogger(__name__)

MSG_LOADED = "Configuration loaded"
MSG_LOAD_FAILED = "Failed to read configuration"
MSG_NETWORK = "Network error, request failed"
MSG_SAVED = "Saved"
MSG_SAVE_FAILED = "Save failed"

StatusCallback = Callable[[str], None]


@dataclass
class LoadResult:
    """Outcome of one configuration read."""

    ok: bool
    message: str
    status_code: int | None = None


@dataclass
class WriteResult:
    """Outcome of a config/project write."""

    ok: bool
    message: str
    status_code: int | None = None
    restart_fields: list[str] = field(default_factory=list)
    active_project_id: str | None = None

    @property
    def restart_needed(self) -> bool:
        return bool(self.restart_fields)


@dataclass
class SystemConfigForm:
    """Values submitted by the system settings form."""

    listen_addr: str = ""
    session_cookie: str = ""
    upload_dir: str = ""
    work_dir: str = ""
    backup_dir: str = ""
    deployments_file: str = ""
    log_file: str = ""
    default_project_id: str = ""
    new_auth_key: str = ""

    @classmethod
    def from_snapshot(cls, snapshot: ConfigSnapshot) -> SystemConfigForm:
        values = {name: getattr(snapshot.system, name) for name in SYSTEM_FIELDS}
        return cls(default_project_id=snapshot.default_project_id, **values)

    def to_fields(self) -> dict[str, str]:
        fields = {"scope": "system"}
        fields.update({name: getattr(self, name).strip() for name in SYSTEM_FIELDS})
        fields["default_project_id"] = self.default_project_id.strip()
        fields["new_auth_key"] = self.new_auth_key
        return fields


@dataclass
class ProjectForm:
    """Values submitted by the project editor / new-project form."""

    project_id: str = ""
    name: str = ""
    service_name: str = ""
    target_dir: str = ""
    current_version: str = ""
    default_replace_mode: str = ""
    max_upload_mb: str = ""
    backup_ignore: list[str] = field(default_factory=list)
    replace_ignore: list[str] = field(default_factory=list)
    set_default: bool = False

    @classmethod
    def from_project(cls, project: Project) -> ProjectForm:
        return cls(
            project_id=project.id,
            name=project.name,
            service_name=project.service_name,
            target_dir=project.target_dir,
            current_version=project.current_version,
            default_replace_mode=project.default_replace_mode,
            max_upload_mb=str(project.max_upload_mb) if project.max_upload_mb else "",
            backup_ignore=list(project.backup_ignore),
            replace_ignore=list(project.replace_ignore),
        )

    def to_fields(self) -> dict[str, str]:
        fields = {
            "name": self.name.strip(),
            "service_name": self.service_name.strip(),
            "target_dir": self.target_dir.strip(),
            "current_version": self.current_version.strip(),
            "default_replace_mode": self.default_replace_mode.strip(),
            "max_upload_mb": str(self.max_upload_mb).strip(),
            "backup_ignore_text": "\n".join(r.strip() for r in self.backup_ignore if r.strip()),
            "replace_ignore_text": "\n".join(r.strip() for r in self.replace_ignore if r.strip()),
        }
        if self.set_default:
            fields["set_default_project"] = "1"
        return fields


class ConfigStore:
    """Owns the config snapshot and the active project pointer.

    Args:
        api: Transport with ``get``/``post_form``/``delete``.
        sync: Fan-out for derived views (a fresh one if omitted).
        on_status: Receives operator-visible status messages.
    """

    def __init__(
        self,
        api,
        sync: ProjectSync | None = None,
        *,
        on_status: StatusCallback | None = None,
    ) -> None:
        self._api = api
        self.sync = sync or ProjectSync()
        self._on_status = on_status
        self._lock = threading.RLock()
        self._snapshot = ConfigSnapshot()
        self._active_id: str | None = None
        self._view = derive_console_view(self._snapshot, None)
        self._loaded = False

    # ── Read access ─────────────────────────────────────────────

    @property
    def snapshot(self) -> ConfigSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def active_project_id(self) -> str | None:
        with self._lock:
            return self._active_id

    @property
    def active_project(self) -> Project | None:
        with self._lock:
            return self._snapshot.get_project(self._active_id)

    @property
    def view(self) -> ConsoleView:
        with self._lock:
            return self._view

    @property
    def loaded(self) -> bool:
        return self._loaded

    # ── Load ────────────────────────────────────────────────────

    def load(self, preferred_project_id: str | None = None, *, silent: bool = False) -> LoadResult:
        """Read ``/api/config`` and replace the cached snapshot.

        Args:
            preferred_project_id: Project to make active if it exists.
            silent: Don't emit status messages (background refresh).
        """
        try:
            resp = self._api.get("/api/config")
        except TransportError as e:
            logger.info("Config load failed: %s", e)
            return self._status(LoadResult(False, MSG_NETWORK), silent)

        if not resp.ok:
            return self._status(
                LoadResult(False, f"{MSG_LOAD_FAILED} ({resp.status})", status_code=resp.status),
                silent,
            )

        payload = resp.json()
        try:
            snapshot = ConfigSnapshot.from_payload(payload)
        except ValueError as e:
            logger.warning("Malformed config payload: %s", e)
            return self._status(
                LoadResult(False, MSG_LOAD_FAILED, status_code=resp.status), silent
            )

        self._apply(snapshot, preferred_project_id)
        return self._status(LoadResult(True, MSG_LOADED, status_code=resp.status), silent)

    def _apply(self, snapshot: ConfigSnapshot, preferred: str | None) -> None:
        with self._lock:
            active = resolve_active_project_id(
                snapshot, preferred=preferred, previous=self._active_id
            )
            self._snapshot = snapshot
            self._active_id = active
            self._loaded = True
            self._view = derive_console_view(snapshot, active)
            logger.debug(
                "Config applied: %d projects, active=%s", len(snapshot.projects), active
            )
            self.sync.publish(self._view)

    # ── Local selection ─────────────────────────────────────────

    def select_project(self, project_id: str | None) -> ConsoleView:
        """Change the active project locally.  No request is made."""
        with self._lock:
            self._active_id = select_project_id(self._snapshot, project_id)
            self._view = derive_console_view(self._snapshot, self._active_id)
            self.sync.publish(self._view)
            return self._view

    # ── Writes ──────────────────────────────────────────────────

    def save_system_config(self, form: SystemConfigForm) -> WriteResult:
        result = self._write("POST", "/api/config", form.to_fields())
        if result.ok:
            form.new_auth_key = ""
        return result

    def save_project_config(self, form: ProjectForm) -> WriteResult:
        fields = {"scope": "project", "project_id": form.project_id.strip()}
        fields.update(form.to_fields())
        return self._write("POST", "/api/config", fields)

    def create_project(self, form: ProjectForm) -> WriteResult:
        fields = {"id": form.project_id.strip()}
        fields.update(form.to_fields())
        return self._write("POST", "/api/projects", fields)

    def delete_project(self, project_id: str) -> WriteResult:
        return self._write("DELETE", f"/api/projects/{quote(project_id.strip(), safe='')}")

    def _write(self, method: str, path: str, fields: dict[str, str] | None = None) -> WriteResult:
        try:
            if method == "DELETE":
                resp = self._api.delete(path)
            else:
                resp = self._api.post_form(path, fields or {})
        except TransportError as e:
            logger.info("%s %s failed: %s", method, path, e)
            return self._status(WriteResult(False, MSG_NETWORK), False)

        if not resp.ok:
            message = resp.error_message(f"{MSG_SAVE_FAILED} ({resp.status})")
            return self._status(WriteResult(False, message, status_code=resp.status), False)

        payload = resp.json() or {}
        restart_fields = [str(f) for f in payload.get("restart_fields") or []]
        message = str(payload.get("message") or MSG_SAVED)
        if payload.get("restart_needed") or restart_fields:
            message = f"{message} (restart required for: {', '.join(restart_fields)})"
        active = str(payload.get("active_project_id") or "") or None

        result = WriteResult(
            True,
            message,
            status_code=resp.status,
            restart_fields=restart_fields,
            active_project_id=active,
        )
        self._status(result, False)
        self.load(active or self.active_project_id, silent=True)
        return result

    def _status(self, result, silent: bool):
        if not silent and self._on_status is not None:
            self._on_status(result.message)
        return result

"""
System configuration and the config snapshot returned by ``/api/config``.

The snapshot is the unit of replacement for the console cache: one
successful read produces one snapshot, and the previous snapshot is
discarded entirely.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, Field

from deployconsole.core.models.project import Project, strip_nulls

logger = logging.getLogger(__name__)

# Fields the system form edits, in form order.
SYSTEM_FIELDS = (
    "listen_addr",
    "session_cookie",
    "upload_dir",
    "work_dir",
    "backup_dir",
    "deployments_file",
    "log_file",
)


class SystemConfig(BaseModel):
    """Server-wide settings.  ``new_auth_key`` is write-only."""

    listen_addr: str = ""
    session_cookie: str = ""
    upload_dir: str = ""
    work_dir: str = ""
    backup_dir: str = ""
    deployments_file: str = ""
    log_file: str = ""
    new_auth_key: str = ""


class ConfigSnapshot(BaseModel):
    """System config + project list + default project pointer."""

    system: SystemConfig = Field(default_factory=SystemConfig)
    projects: list[Project] = Field(default_factory=list)
    default_project_id: str = ""

    @classmethod
    def from_payload(cls, payload: Any) -> ConfigSnapshot:
        """Build a snapshot from a ``/api/config`` response body.

        Accepts both the flat shape and the ``{"config": {...}}`` wrapper
        used by write responses.

        Raises:
            ValueError: If the payload is not a mapping or a project
                entry is malformed.
        """
        if not isinstance(payload, dict):
            raise ValueError(f"expected a JSON object, got {type(payload).__name__}")
        data = payload.get("config", payload) if isinstance(payload.get("config"), dict) else payload

        system = SystemConfig.model_validate(
            strip_nulls({k: data.get(k) for k in SYSTEM_FIELDS})
        )

        raw_projects = data.get("projects") or []
        if not isinstance(raw_projects, list):
            raise ValueError("projects must be a list")
        projects: list[Project] = []
        seen: set[str] = set()
        for entry in raw_projects:
            if not isinstance(entry, dict):
                raise ValueError("project entries must be objects")
            project = Project.from_payload(entry)
            if project.id in seen:
                logger.warning("Duplicate project id %r in config, keeping the first", project.id)
                continue
            seen.add(project.id)
            projects.append(project)

        return cls(
            system=system,
            projects=projects,
            default_project_id=str(data.get("default_project_id") or "").strip(),
        )

    def get_project(self, project_id: str | None) -> Project | None:
        """Look up a project by id."""
        if not project_id:
            return None
        for project in self.projects:
            if project.id == project_id:
                return project
        return None

    def has_project(self, project_id: str | None) -> bool:
        return self.get_project(project_id) is not None

    def effective_default(self) -> Project | None:
        """The default project, or the first one when the pointer is stale."""
        return self.get_project(self.default_project_id) or (
            self.projects[0] if self.projects else None
        )

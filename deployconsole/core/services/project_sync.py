"""
Project sync — derive every project-dependent surface from one snapshot.

Three surfaces show the active project independently: the upload form,
the project editor and the sidebar.  They stay consistent because none
of them keeps its own state; each is re-derived from the same
``(snapshot, active_project_id)`` pair whenever the ConfigStore changes.

Derivation is pure.  Applying the result to a screen is the job of the
surfaces registered on :class:`ProjectSync`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from deployconsole.core.models.project import Project
from deployconsole.core.models.system_config import SYSTEM_FIELDS, ConfigSnapshot
from deployconsole.core.services.versioning import DEFAULT_VERSION, next_patch_version

logger = logging.getLogger(__name__)


# ── Active project resolution ───────────────────────────────────────


def resolve_active_project_id(
    snapshot: ConfigSnapshot,
    *,
    preferred: str | None = None,
    previous: str | None = None,
) -> str | None:
    """Pick the active project after a config load.

    Fallback order: explicit selection → previously active id →
    server default → first project → None.  A candidate only wins if it
    is in the current project list.
    """
    for candidate in (preferred, previous, snapshot.default_project_id):
        if candidate and snapshot.has_project(candidate):
            return candidate
    return snapshot.projects[0].id if snapshot.projects else None


def select_project_id(snapshot: ConfigSnapshot, project_id: str | None) -> str | None:
    """Resolve a local selection: the id itself, else the first project."""
    if project_id and snapshot.has_project(project_id):
        return project_id
    return snapshot.projects[0].id if snapshot.projects else None


# ── View models ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class ProjectOption:
    """One entry of a project selector or the sidebar."""

    id: str
    label: str
    active: bool = False
    default: bool = False


@dataclass
class SystemFormView:
    """System config form values.  The auth key field is always blank."""

    fields: dict[str, str] = field(default_factory=dict)
    new_auth_key: str = ""


@dataclass
class SidebarView:
    items: list[ProjectOption] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.items


@dataclass
class UploadFormView:
    """Upload form: project selector plus the active project's runtime meta."""

    options: list[ProjectOption] = field(default_factory=list)
    selected_id: str | None = None
    runtime_summary: str = ""
    max_upload_label: str = "-"
    next_version: str = DEFAULT_VERSION
    version_placeholder: str = ""


@dataclass
class ProjectEditorView:
    """Config-editor form for the active project (blank when none)."""

    project_id: str = ""
    name: str = ""
    service_name: str = ""
    target_dir: str = ""
    current_version: str = ""
    default_replace_mode: str = ""
    max_upload_mb: str = ""
    backup_ignore_text: str = ""
    replace_ignore_text: str = ""
    is_default: bool = False

    @property
    def blank(self) -> bool:
        return not self.project_id


@dataclass
class DefaultProjectView:
    options: list[ProjectOption] = field(default_factory=list)
    selected_id: str | None = None


@dataclass
class ConsoleView:
    """Everything the console shows that depends on the config cache."""

    active_project_id: str | None = None
    system: SystemFormView = field(default_factory=SystemFormView)
    sidebar: SidebarView = field(default_factory=SidebarView)
    upload: UploadFormView = field(default_factory=UploadFormView)
    editor: ProjectEditorView = field(default_factory=ProjectEditorView)
    default_selector: DefaultProjectView = field(default_factory=DefaultProjectView)


# ── Derivation ──────────────────────────────────────────────────────


def runtime_summary(project: Project | None) -> str:
    """``Service: x | Directory: y | Current version: z`` for a project."""
    service = (project.service_name if project else "") or "-"
    target = (project.target_dir if project else "") or "-"
    version = (project.current_version if project else "") or "-"
    return f"Service: {service} | Directory: {target} | Current version: {version}"


def _options(snapshot: ConfigSnapshot, active_id: str | None) -> list[ProjectOption]:
    default = snapshot.effective_default()
    default_id = default.id if default else None
    return [
        ProjectOption(
            id=p.id,
            label=p.label,
            active=p.id == active_id,
            default=p.id == default_id,
        )
        for p in snapshot.projects
    ]


def derive_upload_view(snapshot: ConfigSnapshot, active_id: str | None) -> UploadFormView:
    project = snapshot.get_project(active_id)
    next_version = next_patch_version((project.current_version if project else "") or DEFAULT_VERSION)
    return UploadFormView(
        options=_options(snapshot, active_id),
        selected_id=project.id if project else None,
        runtime_summary=runtime_summary(project),
        max_upload_label=str(project.max_upload_mb) if project and project.max_upload_mb else "-",
        next_version=next_version,
        version_placeholder=f"Leave blank to auto-increment to {next_version}",
    )


def derive_editor_view(snapshot: ConfigSnapshot, active_id: str | None) -> ProjectEditorView:
    project = snapshot.get_project(active_id)
    if project is None:
        return ProjectEditorView()
    default = snapshot.effective_default()
    return ProjectEditorView(
        project_id=project.id,
        name=project.name,
        service_name=project.service_name,
        target_dir=project.target_dir,
        current_version=project.current_version,
        default_replace_mode=project.default_replace_mode,
        max_upload_mb=str(project.max_upload_mb) if project.max_upload_mb else "",
        backup_ignore_text="\n".join(project.backup_ignore),
        replace_ignore_text="\n".join(project.replace_ignore),
        is_default=default is not None and default.id == project.id,
    )


def derive_console_view(snapshot: ConfigSnapshot, active_id: str | None) -> ConsoleView:
    """Derive every dependent surface from one snapshot + active id."""
    default = snapshot.effective_default()
    return ConsoleView(
        active_project_id=active_id,
        system=SystemFormView(
            fields={name: getattr(snapshot.system, name) for name in SYSTEM_FIELDS},
        ),
        sidebar=SidebarView(items=_options(snapshot, active_id)),
        upload=derive_upload_view(snapshot, active_id),
        editor=derive_editor_view(snapshot, active_id),
        default_selector=DefaultProjectView(
            options=_options(snapshot, active_id),
            selected_id=default.id if default else None,
        ),
    )


# ── Fan-out ─────────────────────────────────────────────────────────

Surface = Callable[[ConsoleView], None]


class ProjectSync:
    """Pushes each newly derived ConsoleView to every registered surface."""

    def __init__(self) -> None:
        self._surfaces: list[Surface] = []

    def register(self, surface: Surface) -> None:
        self._surfaces.append(surface)

    def unregister(self, surface: Surface) -> None:
        if surface in self._surfaces:
            self._surfaces.remove(surface)

    def publish(self, view: ConsoleView) -> None:
        logger.debug(
            "Publishing console view (active=%s, projects=%d) to %d surfaces",
            view.active_project_id, len(view.sidebar.items), len(self._surfaces),
        )
        for surface in list(self._surfaces):
            surface(view)

"""
Changes viewer — file-level diff of one deployment (or a dry run).

``show`` publishes a loading view first, fetches the deployment record,
then publishes the final view.  Deployment records are never cached:
every ``show`` is a fresh request.

Records that predate per-deployment ignore-rule snapshots come back
without ``replace_ignore``; for those the locally cached project rules
are shown instead.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable
from urllib.parse import quote

from deployconsole.core.errors import TransportError
from deployconsole.core.models.deployment import (
    ACTION_DELETED,
    ChangeEntry,
    Deployment,
    PreviewResult,
)
from deployconsole.core.models.project import normalize_replace_mode
from deployconsole.core.services.upload import MSG_NO_PACKAGE, MSG_NO_PROJECT, package_attached
from deployconsole.core.services.versioning import format_bytes

logger = logging.getLogger(__name__)

MSG_LOADING = "Loading..."
MSG_LOAD_FAILED = "Failed to load"
MSG_NO_RULES = "No replace-ignore rules configured"
MSG_NO_CHANGES = "No file changes"


@dataclass(frozen=True)
class ChangeRow:
    action: str
    path: str
    size: str


@dataclass
class ChangesView:
    """Modal content for one deployment's changes."""

    deployment_id: str = ""
    title: str = ""
    subtitle: str = ""
    ignore_rules: list[str] = field(default_factory=list)
    rows: list[ChangeRow] = field(default_factory=list)
    summary: str = ""
    ignored_paths: list[str] = field(default_factory=list)
    loading: bool = False
    ok: bool = False
    status_code: int | None = None

    @property
    def rules_placeholder(self) -> str:
        return "" if self.ignore_rules else MSG_NO_RULES

    @property
    def rows_placeholder(self) -> str:
        return "" if self.rows else MSG_NO_CHANGES

    def to_dict(self) -> dict:
        return {
            "deployment_id": self.deployment_id,
            "title": self.title,
            "subtitle": self.subtitle,
            "ok": self.ok,
            "ignore_rules": list(self.ignore_rules),
            "changed": [
                {"action": r.action, "path": r.path, "size": r.size} for r in self.rows
            ],
            "summary": self.summary,
            "ignored_paths": list(self.ignored_paths),
        }


# ── Derivation ──────────────────────────────────────────────────────


def change_rows(changed: list[ChangeEntry]) -> list[ChangeRow]:
    """Table rows in server order.  Deletions never show a size."""
    return [
        ChangeRow(
            action=entry.action or "-",
            path=entry.path or "-",
            size="-" if entry.action == ACTION_DELETED else format_bytes(entry.size),
        )
        for entry in changed
    ]


def deployment_header(dep: Deployment) -> str:
    return (
        f"Project: {dep.project_name or dep.project_id or '-'} | "
        f"Type: {dep.type or '-'} | "
        f"Version: {dep.version or '-'} | "
        f"Status: {dep.status or '-'} | "
        f"Replace mode: {dep.replace_mode or '-'}"
    )


def derive_changes_view(
    deployment_id: str,
    dep: Deployment,
    fallback_rules: list[str] | None = None,
) -> ChangesView:
    rules = list(dep.replace_ignore) or [r for r in (fallback_rules or []) if r.strip()]
    return ChangesView(
        deployment_id=deployment_id,
        title=f"Changes - {deployment_id}",
        subtitle=deployment_header(dep),
        ignore_rules=rules,
        rows=change_rows(dep.changed),
        ok=True,
    )


def derive_preview_view(preview: PreviewResult) -> ChangesView:
    s = preview.summary
    return ChangesView(
        title=f"Preview - {preview.project_name or preview.project_id or '-'}",
        subtitle=(
            f"Project: {preview.project_name or preview.project_id or '-'} | "
            f"Type: preview | Replace mode: {preview.replace_mode or '-'}"
        ),
        ignore_rules=list(preview.replace_ignore),
        rows=change_rows(preview.changed),
        summary=(
            f"{s.total} change(s): {s.added} added, {s.updated} updated, "
            f"{s.deleted} deleted, {s.ignored_paths} ignored path(s)"
        ),
        ignored_paths=list(preview.ignored_paths),
        ok=True,
    )


# ── Viewer ──────────────────────────────────────────────────────────


class ChangesViewer:
    """Fetches and renders deployment diffs on demand.

    Args:
        api: Transport with ``get`` / ``upload``.
        store: ConfigStore, read for fallback ignore rules and the
            active project.
        surface: Receives each ChangesView (loading, then final).
    """

    def __init__(self, api, store=None, *, surface: Callable[[ChangesView], None] | None = None) -> None:
        self._api = api
        self._store = store
        self._surface = surface

    def show(self, deployment_id: str) -> ChangesView:
        deployment_id = deployment_id.strip()
        self._publish(
            ChangesView(
                deployment_id=deployment_id,
                title=f"Changes - {deployment_id}",
                subtitle=MSG_LOADING,
                loading=True,
            )
        )

        failed = ChangesView(deployment_id=deployment_id, title=f"Changes - {deployment_id}")
        try:
            resp = self._api.get(f"/api/deployments/{quote(deployment_id, safe='')}")
        except TransportError as e:
            logger.info("Deployment %s fetch failed: %s", deployment_id, e)
            failed.subtitle = MSG_LOAD_FAILED
            return self._publish(failed)

        if not resp.ok:
            failed.subtitle = f"{MSG_LOAD_FAILED} ({resp.status})"
            failed.status_code = resp.status
            return self._publish(failed)

        payload = resp.json()
        try:
            if payload is None:
                raise ValueError("not a JSON object")
            dep = Deployment.from_payload(payload)
        except ValueError as e:
            logger.warning("Malformed deployment %s: %s", deployment_id, e)
            failed.subtitle = MSG_LOAD_FAILED
            failed.status_code = resp.status
            return self._publish(failed)

        view = derive_changes_view(deployment_id, dep, self._fallback_rules(dep.project_id))
        view.status_code = resp.status
        return self._publish(view)

    def preview(self, package: Path | None, project_id: str = "", replace_mode: str = "") -> ChangesView:
        """Dry-run a package against a project's target directory."""
        title = "Preview"
        if not package_attached(package):
            return self._publish(ChangesView(title=title, subtitle=MSG_NO_PACKAGE))
        project_id = project_id.strip() or (self._store.active_project_id if self._store else "") or ""
        if not project_id:
            return self._publish(ChangesView(title=title, subtitle=MSG_NO_PROJECT))

        fields = {"project_id": project_id}
        if replace_mode.strip():
            fields["replace_mode"] = normalize_replace_mode(replace_mode)

        self._publish(ChangesView(title=title, subtitle=MSG_LOADING, loading=True))
        try:
            resp = self._api.upload("/api/preview", fields, Path(package))
        except TransportError as e:
            logger.info("Preview failed: %s", e)
            return self._publish(ChangesView(title=title, subtitle=MSG_LOAD_FAILED))

        if not resp.ok:
            message = resp.error_message(f"Preview failed ({resp.status})")
            return self._publish(ChangesView(title=title, subtitle=message, status_code=resp.status))

        payload = resp.json()
        try:
            if payload is None:
                raise ValueError("not a JSON object")
            preview = PreviewResult.from_payload(payload)
        except ValueError as e:
            logger.warning("Malformed preview response: %s", e)
            return self._publish(ChangesView(title=title, subtitle=MSG_LOAD_FAILED))

        view = derive_preview_view(preview)
        view.status_code = resp.status
        return self._publish(view)

    def _fallback_rules(self, project_id: str) -> list[str]:
        if self._store is None:
            return []
        project = self._store.snapshot.get_project(project_id) or self._store.active_project
        return list(project.replace_ignore) if project else []

    def _publish(self, view: ChangesView) -> ChangesView:
        if self._surface is not None:
            self._surface(view)
        return view

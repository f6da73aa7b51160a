"""
CLI commands for projects — list, inspect, edit, create, delete.

Thin wrappers over ``deployconsole.core.services.config_store``.
"""

from __future__ import annotations

import json
import sys

import click

from deployconsole.core.services.config_store import ProjectForm, WriteResult
from deployconsole.ui.cli import render
from deployconsole.ui.cli.helpers import open_console, require_config


def _project_options(fn):
    """Editable project fields, shared by ``save`` and ``create``."""
    options = [
        click.option("--name", default=None, help="Display name."),
        click.option("--service", "service_name", default=None, help="Service (unit) name."),
        click.option("--target-dir", default=None, help="Deployment target directory."),
        click.option("--current-version", default=None, help="Recorded current version."),
        click.option(
            "--mode",
            "default_replace_mode",
            type=click.Choice(["full", "partial"], case_sensitive=False),
            default=None,
            help="Default replace mode.",
        ),
        click.option("--max-upload-mb", type=click.IntRange(min=0), default=None, help="Upload limit in MiB."),
        click.option("--backup-ignore", multiple=True, help="Backup ignore rule (repeatable, replaces all)."),
        click.option("--replace-ignore", multiple=True, help="Replace ignore rule (repeatable, replaces all)."),
        click.option("--set-default", is_flag=True, help="Make this the default project."),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _apply_options(form: ProjectForm, values: dict) -> ProjectForm:
    for name in ("name", "service_name", "target_dir", "current_version", "default_replace_mode"):
        if values.get(name) is not None:
            setattr(form, name, values[name])
    if values.get("max_upload_mb") is not None:
        form.max_upload_mb = str(values["max_upload_mb"])
    if values.get("backup_ignore"):
        form.backup_ignore = list(values["backup_ignore"])
    if values.get("replace_ignore"):
        form.replace_ignore = list(values["replace_ignore"])
    form.set_default = bool(values.get("set_default"))
    return form


def _report(result: WriteResult, as_json: bool = False) -> None:
    if as_json:
        click.echo(json.dumps({
            "ok": result.ok,
            "message": result.message,
            "status_code": result.status_code,
            "restart_fields": result.restart_fields,
            "active_project_id": result.active_project_id,
        }, indent=2))
    else:
        render.status(result.message, ok=result.ok)
    if not result.ok:
        sys.exit(1)


@click.group()
def project() -> None:
    """Projects — list, inspect, edit, create, delete."""


@project.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_projects(ctx: click.Context, as_json: bool) -> None:
    """List configured projects."""
    console = open_console(ctx)
    require_config(console)
    view = console.store.view

    if as_json:
        click.echo(json.dumps([
            {"id": item.id, "label": item.label, "active": item.active, "default": item.default}
            for item in view.sidebar.items
        ], indent=2))
        return

    click.secho("\n📦 Projects", fg="cyan", bold=True)
    render.sidebar(view.sidebar)
    click.echo()


@project.command("show")
@click.argument("project_id", required=False)
@click.pass_context
def show(ctx: click.Context, project_id: str | None) -> None:
    """Show one project (default: the active project).

    An unknown PROJECT_ID falls back to the first project.
    """
    console = open_console(ctx)
    require_config(console, project_id)
    view = console.store.select_project(project_id) if project_id else console.store.view

    click.echo()
    render.editor(view.editor)
    click.echo()
    render.runtime(view)
    click.echo()


@project.command("save")
@click.argument("project_id")
@_project_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def save(ctx: click.Context, project_id: str, as_json: bool, **values) -> None:
    """Update PROJECT_ID.  Unspecified fields keep their current values.

    Examples:

        deployconsole project save api --current-version 1.2.0

        deployconsole project save api --replace-ignore .env --replace-ignore data/
    """
    console = open_console(ctx)
    require_config(console, project_id)
    current = console.store.snapshot.get_project(project_id)
    if current is None:
        render.status(f"Unknown project: {project_id}", ok=False)
        sys.exit(1)

    form = _apply_options(ProjectForm.from_project(current), values)
    _report(console.store.save_project_config(form), as_json)


@project.command("create")
@click.argument("project_id", required=False, default="")
@_project_options
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def create(ctx: click.Context, project_id: str, as_json: bool, **values) -> None:
    """Create a new project (the server assigns an id if PROJECT_ID is omitted)."""
    console = open_console(ctx)
    form = _apply_options(ProjectForm(project_id=project_id), values)
    _report(console.store.create_project(form), as_json)


@project.command("delete")
@click.argument("project_id")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def delete(ctx: click.Context, project_id: str, yes: bool) -> None:
    """Delete PROJECT_ID from the server config."""
    if not yes:
        click.confirm(f"Delete project {project_id}?", abort=True)
    console = open_console(ctx)
    _report(console.store.delete_project(project_id))

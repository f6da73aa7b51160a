"""
Terminal rendering — apply view models to the screen.

Nothing here decides anything: every function takes an already derived
view model from ``deployconsole.core.services`` and prints it.
"""

from __future__ import annotations

import click

from deployconsole.core.services.changes import ChangesView
from deployconsole.core.services.log_stream import LogLine
from deployconsole.core.services.project_sync import ConsoleView, ProjectEditorView, SidebarView
from deployconsole.core.services.upload import ProgressEvent

_LEVEL_COLORS = {"error": "red", "warn": "yellow", "info": "green"}
_ACTION_COLORS = {"added": "green", "updated": "yellow"}


def status(message: str, ok: bool = True) -> None:
    if ok:
        click.secho(f"✅ {message}", fg="green")
    else:
        click.secho(f"❌ {message}", fg="red")


def runtime(view: ConsoleView) -> None:
    upload = view.upload
    click.echo(f"   {upload.runtime_summary}")
    click.echo(f"   Max upload: {upload.max_upload_label} MiB")
    click.echo(f"   Next version: {upload.next_version}")


def sidebar(view: SidebarView) -> None:
    if view.empty:
        click.secho("   No projects configured", fg="yellow")
        return
    for item in view.items:
        marker = "▸" if item.active else " "
        default = " (default)" if item.default else ""
        line = f"   {marker} {item.id:<16} {item.label}{default}"
        if item.active:
            click.secho(line, fg="cyan", bold=True)
        else:
            click.echo(line)


def system_form(view: ConsoleView) -> None:
    for name, value in view.system.fields.items():
        click.echo(f"   {name:<18} {value or '-'}")
    click.echo(f"   {'default_project':<18} {view.default_selector.selected_id or '-'}")


def editor(view: ProjectEditorView) -> None:
    if view.blank:
        click.secho("   No project selected", fg="yellow")
        return
    default = " (default)" if view.is_default else ""
    click.secho(f"   {view.project_id}{default}", fg="cyan", bold=True)
    rows = (
        ("name", view.name),
        ("service_name", view.service_name),
        ("target_dir", view.target_dir),
        ("current_version", view.current_version),
        ("replace_mode", view.default_replace_mode),
        ("max_upload_mb", view.max_upload_mb),
    )
    for label, value in rows:
        click.echo(f"   {label:<16} {value or '-'}")
    for label, text in (("backup_ignore", view.backup_ignore_text), ("replace_ignore", view.replace_ignore_text)):
        rules = text.splitlines()
        click.echo(f"   {label:<16} {rules[0] if rules else '-'}")
        for rule in rules[1:]:
            click.echo(f"   {'':<16} {rule}")


def log_line(line: LogLine | None) -> None:
    if line is None:
        return
    click.secho(line.text, fg=_LEVEL_COLORS.get(line.level or "", None))


class ProgressPrinter:
    """Single-line percentage display for uploads."""

    def __call__(self, event: ProgressEvent) -> None:
        if event.failed:
            click.echo()
            return
        click.echo(f"\r   Upload progress: {event.percent:3d}%", nl=event.done)


def changes(view: ChangesView) -> None:
    if view.loading:
        return
    click.secho(f"\n📄 {view.title}", fg="cyan", bold=True)
    click.echo(f"   {view.subtitle}")
    if not view.ok:
        return
    if view.summary:
        click.echo(f"   {view.summary}")

    click.echo()
    click.secho("   Replace-ignore rules:", bold=True)
    if view.rules_placeholder:
        click.secho(f"     {view.rules_placeholder}", dim=True)
    for rule in view.ignore_rules:
        click.echo(f"     {rule}")

    click.echo()
    click.secho("   Changed files:", bold=True)
    if view.rows_placeholder:
        click.secho(f"     {view.rows_placeholder}", dim=True)
    for row in view.rows:
        click.secho(f"     {row.action:<8}", fg=_ACTION_COLORS.get(row.action, "red"), nl=False)
        click.echo(f" {row.size:>10}  {row.path}")

    if view.ignored_paths:
        click.echo()
        click.secho("   Ignored paths:", bold=True)
        for path in view.ignored_paths:
            click.echo(f"     {path}")
    click.echo()

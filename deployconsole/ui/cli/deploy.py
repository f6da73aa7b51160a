"""
CLI commands for deployments — upload, self-update, logs, changes,
preview, history, rollback, notes.

Thin wrappers over the workflows in ``deployconsole.core.services``.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from deployconsole.core.reliability.recovery_poll import PollOutcome
from deployconsole.core.services.self_update import (
    MSG_GAVE_UP,
    MSG_RECOVERED,
    SelfUpdateForm,
    SelfUpdateState,
)
from deployconsole.core.services.upload import UploadForm
from deployconsole.ui.cli import render
from deployconsole.ui.cli.helpers import follow_logs, open_console, require_config

_MODE = click.Choice(["full", "partial"], case_sensitive=False)


def _package_path(value: str | None) -> Path | None:
    return Path(value) if value else None


@click.command()
@click.argument("package", required=False)
@click.option("--project", "-p", "project_id", default="", help="Target project (default: active).")
@click.option("--version", "target_version", default="", help="Target version (default: auto-increment).")
@click.option("--mode", "replace_mode", type=_MODE, default=None, help="Replace mode override.")
@click.option("--note", default="", help="Deployment note.")
@click.option("--follow", "-f", is_flag=True, help="Follow the deployment log after upload.")
@click.option("--for", "follow_seconds", type=float, default=None, help="Stop following after N seconds.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def upload(
    ctx: click.Context,
    package: str | None,
    project_id: str,
    target_version: str,
    replace_mode: str | None,
    note: str,
    follow: bool,
    follow_seconds: float | None,
    as_json: bool,
) -> None:
    """Upload PACKAGE as a new deployment.

    Examples:

        deployconsole upload build/app.zip --project api

        deployconsole upload build/app.zip -p api --version 1.4.0 --mode partial -f
    """
    hooks = {} if as_json else {"on_progress": render.ProgressPrinter()}
    console = open_console(ctx, **hooks)
    require_config(console, project_id or None)

    if not as_json and not ctx.obj.get("quiet"):
        click.echo(f"   {console.store.view.upload.runtime_summary}")
        if not target_version:
            click.echo(f"   {console.store.view.upload.version_placeholder}")

    form = UploadForm(
        package=_package_path(package),
        project_id=project_id,
        target_version=target_version,
        replace_mode=replace_mode or "",
        note=note,
    )
    outcome = console.uploads.submit(form)

    if as_json:
        click.echo(json.dumps(outcome.to_dict(), indent=2))
    else:
        render.status(outcome.message, ok=outcome.ok)
    if not outcome.ok:
        sys.exit(1)

    if (follow or follow_seconds is not None) and outcome.deployment_id:
        follow_logs(console, follow_seconds)


@click.command("self-update")
@click.argument("package", required=False)
@click.option("--version", "target_version", default="", help="Version of the new service binary.")
@click.option("--note", default="", help="Deployment note.")
@click.option("--wait/--no-wait", default=True, help="Wait for the service to come back.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def self_update(
    ctx: click.Context,
    package: str | None,
    target_version: str,
    note: str,
    wait: bool,
    as_json: bool,
) -> None:
    """Replace the running service with PACKAGE.

    The service restarts; with --wait (default) the console polls until it
    answers again, for at most two minutes.
    """
    hooks = {} if as_json else {"on_progress": render.ProgressPrinter()}
    console = open_console(ctx, **hooks)
    workflow = console.self_update

    outcome = workflow.submit(
        SelfUpdateForm(package=_package_path(package), target_version=target_version, note=note)
    )
    result = outcome.to_dict()

    if not as_json:
        render.status(outcome.message, ok=outcome.ok)
    if not outcome.ok:
        if as_json:
            click.echo(json.dumps(result, indent=2))
        sys.exit(1)

    recovered = None
    if wait:
        if not as_json:
            click.echo("   Waiting for the service to come back...")
        try:
            polled = workflow.wait_for_recovery()
        except KeyboardInterrupt:
            workflow.cancel_recovery()
            polled = PollOutcome.CANCELLED
        recovered = workflow.state == SelfUpdateState.RECOVERED
        result["recovery"] = polled.value if polled else None
        if not as_json:
            if recovered:
                render.status(MSG_RECOVERED)
            elif polled == PollOutcome.EXHAUSTED:
                render.status(MSG_GAVE_UP, ok=False)

    if as_json:
        click.echo(json.dumps(result, indent=2))
    if recovered is False:
        sys.exit(1)


@click.command()
@click.argument("deployment_id")
@click.option("--for", "follow_seconds", type=float, default=None, help="Stop after N seconds.")
@click.pass_context
def logs(ctx: click.Context, deployment_id: str, follow_seconds: float | None) -> None:
    """Follow the live log of DEPLOYMENT_ID (Ctrl-C to stop)."""
    console = open_console(ctx)
    console.logs.attach(deployment_id.strip())
    follow_logs(console, follow_seconds)


@click.command()
@click.argument("deployment_id")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def changes(ctx: click.Context, deployment_id: str, as_json: bool) -> None:
    """Show the file changes of DEPLOYMENT_ID."""
    console = open_console(ctx)
    # Fallback ignore rules come from the config cache; a failed read is fine
    console.store.load(silent=True)
    view = console.changes.show(deployment_id)

    if as_json:
        click.echo(json.dumps(view.to_dict(), indent=2))
    else:
        render.changes(view)
    if not view.ok:
        sys.exit(1)


@click.command()
@click.argument("package", required=False)
@click.option("--project", "-p", "project_id", default="", help="Target project (default: active).")
@click.option("--mode", "replace_mode", type=_MODE, default=None, help="Replace mode override.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def preview(
    ctx: click.Context,
    package: str | None,
    project_id: str,
    replace_mode: str | None,
    as_json: bool,
) -> None:
    """Dry-run PACKAGE: list what an upload would change."""
    console = open_console(ctx)
    require_config(console, project_id or None)
    view = console.changes.preview(_package_path(package), project_id, replace_mode or "")

    if as_json:
        click.echo(json.dumps(view.to_dict(), indent=2))
    else:
        render.changes(view)
    if not view.ok:
        sys.exit(1)


@click.command()
@click.option("--offset", type=click.IntRange(min=0), default=0, help="Skip this many deployments.")
@click.option("--limit", type=click.IntRange(min=1), default=None, help="Page size.")
@click.pass_context
def deployments(ctx: click.Context, offset: int, limit: int | None) -> None:
    """Print one page of the deployment history."""
    console = open_console(ctx)
    fragment = console.history.fetch_page(offset, limit)
    if fragment is None:
        render.status("Failed to load deployments", ok=False)
        sys.exit(1)
    click.echo(fragment)


@click.command()
@click.argument("deployment_id")
@click.option("--yes", "-y", is_flag=True, help="Don't ask for confirmation.")
@click.pass_context
def rollback(ctx: click.Context, deployment_id: str, yes: bool) -> None:
    """Restore the backup taken before DEPLOYMENT_ID."""
    if not yes:
        click.confirm(f"Roll back deployment {deployment_id}?", abort=True)
    console = open_console(ctx)
    result = console.history.rollback(deployment_id)
    render.status(result.message, ok=result.ok)
    if not result.ok:
        sys.exit(1)


@click.command()
@click.argument("deployment_id")
@click.argument("text", default="")
@click.pass_context
def note(ctx: click.Context, deployment_id: str, text: str) -> None:
    """Set (or clear, with no TEXT) the note of DEPLOYMENT_ID."""
    console = open_console(ctx)
    result = console.history.update_note(deployment_id, text)
    render.status(result.message, ok=result.ok)
    if not result.ok:
        sys.exit(1)

"""
Deploy Console — CLI entrypoint.

Usage:
    python -m deployconsole.main --help
    python -m deployconsole.main status
    python -m deployconsole.main upload build/app.zip --project api
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from deployconsole import __version__
from deployconsole.core.observability.logging_config import LogSettings, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="deployconsole")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to console.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """Deploy Console — operate a deployment service from the terminal."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (env + flags; refined once console.yml is read) ──
    ctx.obj["log_flags"] = {"debug": debug, "verbose": verbose, "quiet": quiet}
    setup_logging(LogSettings.from_env().with_flags(**ctx.obj["log_flags"]))


@cli.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.option("--project", "-p", "project_id", default=None, help="Project to show (default: active).")
@click.pass_context
def status(ctx: click.Context, as_json: bool, project_id: str | None) -> None:
    """Show the service's projects and the active project's runtime."""
    from deployconsole.ui.cli import render
    from deployconsole.ui.cli.helpers import open_console, require_config

    console = open_console(ctx)
    require_config(console, project_id)
    view = console.store.view

    if as_json:
        click.echo(json.dumps({
            "base_url": console.settings.base_url,
            "active_project_id": view.active_project_id,
            "default_project_id": view.default_selector.selected_id,
            "runtime": view.upload.runtime_summary,
            "next_version": view.upload.next_version,
            "projects": [item.id for item in view.sidebar.items],
        }, indent=2))
        return

    quiet = ctx.obj.get("quiet", False)
    if not quiet:
        click.secho(f"\n🚀 {console.settings.base_url}", fg="cyan", bold=True)
        click.echo()

    click.secho(f"   Projects: {len(view.sidebar.items)}", fg="white", bold=True)
    render.sidebar(view.sidebar)

    if view.active_project_id:
        click.echo()
        click.secho("   Active project:", fg="white", bold=True)
        render.runtime(view)

    click.echo()


@cli.group()
def config() -> None:
    """Server configuration commands."""


@config.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Show the server's system configuration."""
    from deployconsole.ui.cli import render
    from deployconsole.ui.cli.helpers import open_console, require_config

    console = open_console(ctx)
    require_config(console)
    view = console.store.view

    if as_json:
        data = dict(view.system.fields)
        data["default_project_id"] = view.default_selector.selected_id
        click.echo(json.dumps(data, indent=2))
        return

    click.secho("\n⚙️  System configuration", fg="cyan", bold=True)
    render.system_form(view)
    click.echo()


@config.command("set")
@click.option("--listen-addr", default=None, help="Server listen address.")
@click.option("--session-cookie", default=None, help="Session cookie name.")
@click.option("--upload-dir", default=None, help="Upload directory.")
@click.option("--work-dir", default=None, help="Working directory.")
@click.option("--backup-dir", default=None, help="Backup directory.")
@click.option("--deployments-file", default=None, help="Deployment history file.")
@click.option("--log-file", default=None, help="Server log file.")
@click.option("--default-project", "default_project_id", default=None, help="Default project id.")
@click.option(
    "--new-auth-key",
    is_flag=True,
    help="Prompt for a new authentication key.",
)
@click.pass_context
def config_set(ctx: click.Context, new_auth_key: bool, **values) -> None:
    """Update the server's system configuration.

    Unspecified fields keep their current values.  Some fields only take
    effect after a service restart; the server says which.
    """
    from deployconsole.core.services.config_store import SystemConfigForm
    from deployconsole.ui.cli import render
    from deployconsole.ui.cli.helpers import open_console, require_config

    console = open_console(ctx)
    require_config(console)

    form = SystemConfigForm.from_snapshot(console.store.snapshot)
    for name, value in values.items():
        if value is not None:
            setattr(form, name, value)
    if new_auth_key:
        form.new_auth_key = click.prompt(
            "New auth key", hide_input=True, confirmation_prompt=True
        )

    result = console.store.save_system_config(form)
    render.status(result.message, ok=result.ok)
    if not result.ok:
        sys.exit(1)


# ── Register sub-command groups from deployconsole/ui/cli/ ────────

from deployconsole.ui.cli.project import project  # noqa: E402
from deployconsole.ui.cli.deploy import (  # noqa: E402
    changes,
    deployments,
    logs,
    note,
    preview,
    rollback,
    self_update,
    upload,
)

cli.add_command(project)
cli.add_command(upload)
cli.add_command(self_update)
cli.add_command(logs)
cli.add_command(changes)
cli.add_command(preview)
cli.add_command(deployments)
cli.add_command(rollback)
cli.add_command(note)


if __name__ == "__main__":
    cli()

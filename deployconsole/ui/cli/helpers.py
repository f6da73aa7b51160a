"""
Shared CLI plumbing — settings, console wiring, exit handling.
"""

from __future__ import annotations

import sys
import threading
from pathlib import Path

import click

from deployconsole.core.config.loader import load_settings
from deployconsole.core.console import Console, build_console
from deployconsole.core.errors import ConfigError
from deployconsole.core.observability.logging_config import setup_logging
from deployconsole.ui.cli import render


def open_console(ctx: click.Context, **hooks) -> Console:
    """Build a Console for this invocation.

    ``ctx.obj`` may carry ``api`` / ``streamer`` / ``poll_interval``
    overrides (used by tests).
    """
    config_path: Path | None = ctx.obj.get("config_path")
    try:
        settings = load_settings(config_path)
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)
    setup_logging(settings.log.with_flags(**ctx.obj.get("log_flags", {})))

    console = build_console(
        settings,
        api=ctx.obj.get("api"),
        streamer=ctx.obj.get("streamer"),
        poll_interval=ctx.obj.get("poll_interval"),
        **hooks,
    )
    ctx.call_on_close(console.close)
    return console


def require_config(console: Console, preferred_project_id: str | None = None) -> None:
    """Load the config cache or exit."""
    result = console.store.load(preferred_project_id, silent=True)
    if not result.ok:
        render.status(result.message, ok=False)
        sys.exit(1)


def follow_logs(console: Console, seconds: float | None) -> None:
    """Print the live log until Ctrl-C (or for ``seconds``)."""
    console.logs.panel.subscribe(render.log_line, replay=True)
    try:
        threading.Event().wait(seconds)
    except KeyboardInterrupt:
        click.echo()
    finally:
        console.logs.close()

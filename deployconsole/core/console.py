"""
Console wiring — one object graph per operator session.

Every entry point builds its components here so they share one
transport, one ConfigStore and one log stream:

    - CLI:    ui/cli/helpers.py → build_console(settings, ...)
    - Tests:  build_console(settings, api=FakeApi(), streamer=FakeStreamer())
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from deployconsole.core.config.loader import ConsoleSettings
from deployconsole.core.services.changes import ChangesView, ChangesViewer
from deployconsole.core.services.config_store import ConfigStore
from deployconsole.core.services.deployments import DeploymentHistory
from deployconsole.core.services.log_stream import LogPanel, LogStreamClient, SSEStreamer, Streamer
from deployconsole.core.services.project_sync import ProjectSync
from deployconsole.core.services.self_update import SelfUpdateWorkflow
from deployconsole.core.services.transport import ApiClient
from deployconsole.core.services.upload import ProgressEvent, UploadWorkflow


@dataclass
class Console:
    """The wired components of one console session."""

    settings: ConsoleSettings
    api: object
    sync: ProjectSync
    store: ConfigStore
    logs: LogStreamClient
    history: DeploymentHistory
    uploads: UploadWorkflow
    self_update: SelfUpdateWorkflow
    changes: ChangesViewer

    def close(self) -> None:
        self.logs.close()
        self.self_update.cancel_recovery()


def build_api(settings: ConsoleSettings) -> ApiClient:
    return ApiClient(
        settings.base_url,
        session_cookie=settings.session_cookie,
        session_token=settings.session_token,
        timeout=settings.timeout,
    )


def build_console(
    settings: ConsoleSettings,
    *,
    api=None,
    streamer: Streamer | None = None,
    panel: LogPanel | None = None,
    on_status: Callable[[str], None] | None = None,
    on_progress: Callable[[ProgressEvent], None] | None = None,
    on_changes: Callable[[ChangesView], None] | None = None,
    on_fragment: Callable[[str], None] | None = None,
    on_reload: Callable[[], None] | None = None,
    poll_interval: float | None = None,
) -> Console:
    """Wire a Console.  ``api`` and ``streamer`` default to the real ones."""
    api = api if api is not None else build_api(settings)
    streamer = streamer or SSEStreamer(api, retry=settings.stream_retry)

    sync = ProjectSync()
    store = ConfigStore(api, sync, on_status=on_status)
    logs = LogStreamClient(streamer, panel)
    history = DeploymentHistory(api, surface=on_fragment, page_limit=settings.page_limit)

    def _reload() -> None:
        # Full resync with the new server instance
        logs.close()
        store.load(store.active_project_id)
        history.refresh()
        if on_reload is not None:
            on_reload()

    self_update_kwargs = {} if poll_interval is None else {"poll_interval": poll_interval}
    return Console(
        settings=settings,
        api=api,
        sync=sync,
        store=store,
        logs=logs,
        history=history,
        uploads=UploadWorkflow(
            api, store, logs, history=history, on_progress=on_progress, on_status=on_status
        ),
        self_update=SelfUpdateWorkflow(
            api,
            logs,
            on_reload=_reload,
            on_progress=on_progress,
            on_status=on_status,
            **self_update_kwargs,
        ),
        changes=ChangesViewer(api, store, surface=on_changes),
    )

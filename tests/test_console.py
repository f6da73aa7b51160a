"""
Tests for console wiring — shared components and the post-update reload.
"""

from deployconsole.core.console import build_api, build_console
from deployconsole.core.reliability.recovery_poll import PollOutcome
from deployconsole.core.services.self_update import SelfUpdateForm
from deployconsole.core.services.transport import ApiClient, ApiResponse
from deployconsole.core.services.upload import UploadForm

from tests.fakes import FakeStreamer, json_response


class TestBuildConsole:
    def test_build_api(self, settings):
        api = build_api(settings)
        assert isinstance(api, ApiClient)
        assert api.base_url == "http://updater.test:8080"
        assert api.session.cookies.get("updater_session") == "s3cret"

    def test_components_share_store(self, settings, two_projects, streamer):
        console = build_console(settings, api=two_projects, streamer=streamer)
        console.store.load("api")
        assert console.uploads.resolve_project_id(UploadForm()) == "api"
        assert console.history.limit == settings.page_limit

    def test_status_hook(self, settings, two_projects, streamer):
        messages = []
        console = build_console(settings, api=two_projects, streamer=streamer, on_status=messages.append)
        console.store.load()
        assert messages == ["Configuration loaded"]


class TestReloadAfterSelfUpdate:
    def test_full_resync(self, settings, two_projects, package):
        two_projects.respond("POST", "/api/self-update", json_response(200, {"id": "su-1"}))
        two_projects.respond("GET", "/partials/deployments", ApiResponse(200, "<tr>su-1</tr>"))
        streamer = FakeStreamer()
        fragments, reloads = [], []
        console = build_console(
            settings,
            api=two_projects,
            streamer=streamer,
            on_fragment=fragments.append,
            on_reload=lambda: reloads.append(True),
            poll_interval=0,
        )
        console.store.load("api")

        console.self_update.submit(SelfUpdateForm(package=package))
        assert console.self_update.wait_for_recovery(5) == PollOutcome.RECOVERED

        assert streamer.last.closed  # log stream of the old process is gone
        assert console.store.active_project_id == "api"
        assert fragments == ["<tr>su-1</tr>"]
        assert reloads == [True]
        console.close()

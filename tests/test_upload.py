"""
Tests for the upload workflow — validation, progress, success + failure paths.
"""

from pathlib import Path

import pytest

from deployconsole.core.errors import TransportError
from deployconsole.core.services.config_store import ConfigStore
from deployconsole.core.services.deployments import DeploymentHistory
from deployconsole.core.services.log_stream import LogStreamClient
from deployconsole.core.services.transport import ApiResponse
from deployconsole.core.services.upload import (
    MSG_BAD_VERSION,
    MSG_NETWORK,
    MSG_NO_PACKAGE,
    MSG_NO_PROJECT,
    ProgressChannel,
    ProgressEvent,
    UploadForm,
    UploadState,
    UploadWorkflow,
    progress_percent,
)

from tests.fakes import FakeApi, FakeStreamer, json_response


class TestProgressPercent:
    def test_floor(self):
        assert progress_percent(1, 3) == 33
        assert progress_percent(999, 1000) == 99

    def test_complete(self):
        assert progress_percent(1000, 1000) == 100

    def test_clamped(self):
        assert progress_percent(2000, 1000) == 100
        assert progress_percent(-5, 1000) == 0

    def test_unknown_total(self):
        assert progress_percent(10, 0) is None


class TestProgressChannel:
    def test_caps_at_99_until_complete(self):
        events = []
        channel = ProgressChannel(events.append)
        channel.update(1000, 1000)
        assert channel.percent == 99
        channel.complete()
        assert events[-1] == ProgressEvent(100, done=True)

    def test_monotonic(self):
        events = []
        channel = ProgressChannel(events.append)
        channel.update(50, 100)
        channel.update(20, 100)
        channel.update(50, 100)
        assert [e.percent for e in events] == [50]

    def test_ignored_after_finish(self):
        events = []
        channel = ProgressChannel(events.append)
        channel.fail()
        channel.update(50, 100)
        assert events == [ProgressEvent(0, failed=True)]

    def test_reset(self):
        channel = ProgressChannel()
        channel.update(50, 100)
        channel.complete()
        channel.reset()
        assert channel.percent == 0
        assert not channel.finished


# ── Workflow ─────────────────────────────────────────────────────────


@pytest.fixture
def loaded_store(two_projects: FakeApi) -> ConfigStore:
    store = ConfigStore(two_projects)
    store.load()
    return store


def _workflow(api, store, **kwargs):
    states, messages, progress = [], [], []
    wf = UploadWorkflow(
        api,
        store,
        on_state=states.append,
        on_status=messages.append,
        on_progress=progress.append,
        **kwargs,
    )
    return wf, states, messages, progress


class TestValidation:
    def test_no_package(self, two_projects, loaded_store):
        wf, states, messages, _ = _workflow(two_projects, loaded_store)
        outcome = wf.submit(UploadForm())
        assert not outcome.ok
        assert outcome.message == MSG_NO_PACKAGE
        assert states == [UploadState.VALIDATING, UploadState.IDLE]
        assert two_projects.calls_to("POST", "/api/upload") == []

    def test_missing_file(self, two_projects, loaded_store, tmp_path: Path):
        wf, *_ = _workflow(two_projects, loaded_store)
        outcome = wf.submit(UploadForm(package=tmp_path / "missing.zip"))
        assert outcome.message == MSG_NO_PACKAGE

    def test_no_project(self, api: FakeApi, package: Path):
        wf, *_ = _workflow(api, ConfigStore(api))
        outcome = wf.submit(UploadForm(package=package))
        assert outcome.message == MSG_NO_PROJECT
        assert api.calls == []

    @pytest.mark.parametrize("version", ["01-02-03", "1.2", "v1.2.3", "1.2.3-beta"])
    def test_bad_version(self, two_projects, loaded_store, package, version):
        wf, *_ = _workflow(two_projects, loaded_store)
        outcome = wf.submit(UploadForm(package=package, target_version=version))
        assert outcome.message == MSG_BAD_VERSION
        assert outcome.state == UploadState.IDLE
        assert two_projects.calls_to("POST", "/api/upload") == []


class TestSubmit:
    def test_success_flow(self, two_projects, loaded_store, package):
        two_projects.respond("POST", "/api/upload", json_response(200, {
            "id": "d-42", "project_id": "api", "project_name": "API", "version": "1.0.1",
        }))
        two_projects.respond("GET", "/partials/deployments", ApiResponse(200, "<tr>d-42</tr>"))
        streamer = FakeStreamer()
        logs = LogStreamClient(streamer)
        fragments = []
        history = DeploymentHistory(two_projects, surface=fragments.append)
        wf, states, messages, progress = _workflow(two_projects, loaded_store, logs=logs, history=history)

        form = UploadForm(package=package, project_id="api", replace_mode="Partial", note=" first ")
        outcome = wf.submit(form)

        assert outcome.ok
        assert outcome.message == "Upload complete, deployment: d-42, project: API, target version: 1.0.1"
        sent = two_projects.calls_to("POST", "/api/upload")[0]
        assert sent == {
            "project_id": "api",
            "replace_mode": "partial",
            "note": "first",
            "package": "app.zip",
        }
        # Progress: reset, capped transfer updates, then completion
        assert [e.percent for e in progress] == [0, 25, 50, 75, 99, 100]
        assert progress[-1].done
        assert states == [UploadState.VALIDATING, UploadState.UPLOADING, UploadState.COMPLETED]
        assert messages[0] == "Uploading..."
        # Reconciliation
        assert streamer.last.deployment_id == "d-42"
        assert fragments == ["<tr>d-42</tr>"]
        assert loaded_store.active_project_id == "api"
        assert form.package is None and form.note == ""

    def test_defaults_to_active_project(self, two_projects, loaded_store, package):
        two_projects.respond("POST", "/api/upload", json_response(200, {"id": "d-1"}))
        wf, *_ = _workflow(two_projects, loaded_store)
        outcome = wf.submit(UploadForm(package=package))
        assert two_projects.calls_to("POST", "/api/upload")[0]["project_id"] == "web"
        assert outcome.message == "Upload complete, deployment: d-1, project: web, target version: -"

    def test_server_error(self, two_projects, loaded_store, package):
        two_projects.respond("POST", "/api/upload", json_response(413, {"error": "package too large"}))
        wf, states, messages, progress = _workflow(two_projects, loaded_store)
        form = UploadForm(package=package, target_version="1.0.0")
        outcome = wf.submit(form)
        assert not outcome.ok
        assert outcome.message == "package too large"
        assert states[-2:] == [UploadState.FAILED, UploadState.IDLE]
        assert progress[-1].failed
        assert max(e.percent for e in progress) < 100
        assert form.package == package  # kept for a retry

    def test_server_error_without_body(self, two_projects, loaded_store, package):
        two_projects.respond("POST", "/api/upload", ApiResponse(500, ""))
        wf, *_ = _workflow(two_projects, loaded_store)
        assert wf.submit(UploadForm(package=package)).message == "Upload failed (500)"

    def test_network_error(self, two_projects, loaded_store, package):
        two_projects.respond("POST", "/api/upload", TransportError("reset"))
        wf, *_ = _workflow(two_projects, loaded_store)
        outcome = wf.submit(UploadForm(package=package))
        assert outcome.message == MSG_NETWORK
        assert wf.state == UploadState.IDLE

    def test_resubmit_after_failure(self, two_projects, loaded_store, package):
        two_projects.respond(
            "POST", "/api/upload", ApiResponse(500, ""), json_response(200, {"id": "d-2"})
        )
        wf, *_ = _workflow(two_projects, loaded_store)
        form = UploadForm(package=package)
        assert not wf.submit(form).ok
        assert wf.submit(form).ok

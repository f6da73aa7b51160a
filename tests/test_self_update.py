"""
Tests for the self-update workflow — submission and recovery polling.
"""

import threading

from deployconsole.core.errors import TransportError
from deployconsole.core.reliability.recovery_poll import PollOutcome
from deployconsole.core.services.log_stream import LogStreamClient
from deployconsole.core.services.self_update import (
    MSG_GAVE_UP,
    MSG_RECOVERED,
    MSG_STARTED,
    SelfUpdateForm,
    SelfUpdateState,
    SelfUpdateWorkflow,
    service_alive,
)
from deployconsole.core.services.transport import ApiResponse
from deployconsole.core.services.upload import MSG_BAD_VERSION, MSG_NO_PACKAGE

from tests.fakes import FakeApi, FakeStreamer, json_response


def _workflow(api, **kwargs):
    states, messages, reloads = [], [], []
    wf = SelfUpdateWorkflow(
        api,
        on_state=states.append,
        on_status=messages.append,
        on_reload=lambda: reloads.append(True),
        poll_interval=0,
        **kwargs,
    )
    return wf, states, messages, reloads


class TestServiceAlive:
    def test_ok(self, api: FakeApi):
        api.respond("GET", "/api/config", json_response(200, {}))
        assert service_alive(api)

    def test_unauthorized_counts_as_back(self, api: FakeApi):
        api.respond("GET", "/api/config", ApiResponse(401, "unauthorized"))
        assert service_alive(api)

    def test_down(self, api: FakeApi):
        api.respond("GET", "/api/config", TransportError("refused"))
        assert not service_alive(api)

    def test_server_error_is_not_back(self, api: FakeApi):
        api.respond("GET", "/api/config", ApiResponse(502, "bad gateway"))
        assert not service_alive(api)


class TestValidation:
    def test_no_package(self, api: FakeApi):
        wf, states, messages, _ = _workflow(api)
        outcome = wf.submit(SelfUpdateForm())
        assert outcome.message == MSG_NO_PACKAGE
        assert states == [SelfUpdateState.VALIDATING, SelfUpdateState.IDLE]
        assert api.calls == []

    def test_bad_version(self, api: FakeApi, package):
        wf, *_ = _workflow(api)
        outcome = wf.submit(SelfUpdateForm(package=package, target_version="2.0"))
        assert outcome.message == MSG_BAD_VERSION
        assert api.calls == []


class TestRecovery:
    def test_recovers_at_fifth_probe(self, api: FakeApi, package):
        refused = TransportError("refused")
        api.respond("POST", "/api/self-update", json_response(202, {"id": "su-1"}))
        api.respond("GET", "/api/config", refused, refused, refused, refused, json_response(200, {}))
        streamer = FakeStreamer()
        wf, states, messages, reloads = _workflow(api, logs=LogStreamClient(streamer))

        outcome = wf.submit(SelfUpdateForm(package=package, target_version="3.1.0", note="nightly"))
        assert outcome.ok
        assert outcome.message == f"{MSG_STARTED} (deployment: su-1)"
        assert streamer.last.deployment_id == "su-1"
        sent = api.calls_to("POST", "/api/self-update")[0]
        assert sent == {"target_version": "3.1.0", "note": "nightly", "package": "app.zip"}

        assert wf.wait_for_recovery(5) == PollOutcome.RECOVERED
        assert outcome.poller.attempts == 5
        assert len(api.calls_to("GET", "/api/config")) == 5
        assert reloads == [True]
        assert messages[-1] == MSG_RECOVERED
        assert states[-2:] == [SelfUpdateState.RECOVERING, SelfUpdateState.RECOVERED]

    def test_never_reachable_stops_at_ceiling(self, api: FakeApi, package):
        api.respond("POST", "/api/self-update", json_response(200, {"message": "Restarting"}))
        api.respond("GET", "/api/config", TransportError("refused"))
        wf, states, messages, reloads = _workflow(api, max_attempts=60)

        outcome = wf.submit(SelfUpdateForm(package=package))
        assert outcome.message == "Restarting"
        assert wf.wait_for_recovery(5) == PollOutcome.EXHAUSTED
        assert len(api.calls_to("GET", "/api/config")) == 60
        assert reloads == []
        assert messages[-1] == MSG_GAVE_UP
        assert wf.state == SelfUpdateState.IDLE

    def test_upload_rejected(self, api: FakeApi, package):
        api.respond("POST", "/api/self-update", json_response(400, {"error": "not an executable"}))
        wf, states, messages, _ = _workflow(api)
        outcome = wf.submit(SelfUpdateForm(package=package))
        assert not outcome.ok
        assert outcome.message == "not an executable"
        assert wf.poller is None
        assert states[-2:] == [SelfUpdateState.FAILED, SelfUpdateState.IDLE]

    def test_cancel_recovery(self, api: FakeApi, package):
        api.respond("POST", "/api/self-update", json_response(200, {}))
        wf = SelfUpdateWorkflow(api, poll_interval=30)
        wf.submit(SelfUpdateForm(package=package))
        wf.cancel_recovery()
        assert wf.wait_for_recovery(5) == PollOutcome.CANCELLED
        assert api.calls_to("GET", "/api/config") == []

    def test_resubmit_replaces_running_poll(self, api: FakeApi, package):
        up = threading.Event()

        def config():
            if not up.is_set():
                raise TransportError("refused")
            return json_response(200, {})

        api.respond(
            "POST", "/api/self-update",
            json_response(200, {"id": "su-1"}), json_response(200, {"id": "su-2"}),
        )
        api.respond("GET", "/api/config", config)
        wf, states, messages, reloads = _workflow(api, max_attempts=1000)
        wf.poll_interval = 0.01

        first = wf.submit(SelfUpdateForm(package=package)).poller
        second = wf.submit(SelfUpdateForm(package=package)).poller
        assert second is not first
        assert first.wait(5) == PollOutcome.CANCELLED
        assert not first.running

        up.set()
        assert wf.wait_for_recovery(5) == PollOutcome.RECOVERED
        assert wf.poller is second
        assert reloads == [True]
        assert messages.count(MSG_RECOVERED) == 1

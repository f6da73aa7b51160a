"""
Tests for deployment history — list fragment, rollback, notes.
"""

from deployconsole.core.errors import TransportError
from deployconsole.core.services.deployments import DeploymentHistory
from deployconsole.core.services.transport import ApiResponse

from tests.fakes import FakeApi


class TestFetch:
    def test_fetch_page(self, api: FakeApi):
        api.respond("GET", "/partials/deployments", ApiResponse(200, "<tr>1</tr>"))
        shown = []
        history = DeploymentHistory(api, surface=shown.append, page_limit=10)
        assert history.fetch_page(20) == "<tr>1</tr>"
        assert api.calls_to("GET", "/partials/deployments") == [{"offset": 20, "limit": 10}]
        assert shown == ["<tr>1</tr>"]
        assert history.offset == 20

    def test_failed_refresh_keeps_fragment(self, api: FakeApi):
        api.respond(
            "GET", "/partials/deployments", ApiResponse(200, "<tr>old</tr>"), ApiResponse(500, "")
        )
        shown = []
        history = DeploymentHistory(api, surface=shown.append)
        history.refresh()
        assert history.refresh() is None
        assert history.fragment == "<tr>old</tr>"
        assert shown == ["<tr>old</tr>"]

    def test_network_error(self, api: FakeApi):
        api.respond("GET", "/partials/deployments", TransportError("refused"))
        assert DeploymentHistory(api).refresh() is None


class TestActions:
    def test_rollback(self, api: FakeApi):
        api.respond("POST", "/api/deployments/d-1/rollback", ApiResponse(200, "<tr>rb</tr>"))
        shown = []
        result = DeploymentHistory(api, surface=shown.append).rollback("d-1")
        assert result.ok
        assert result.message == "Rollback queued"
        assert shown == ["<tr>rb</tr>"]

    def test_rollback_plain_text_error(self, api: FakeApi):
        api.respond("POST", "/api/deployments/d-1/rollback", ApiResponse(409, "no backup available\n"))
        result = DeploymentHistory(api).rollback("d-1")
        assert not result.ok
        assert result.message == "no backup available"
        assert result.status_code == 409

    def test_rollback_empty_error(self, api: FakeApi):
        api.respond("POST", "/api/deployments/d-1/rollback", ApiResponse(500, ""))
        assert DeploymentHistory(api).rollback("d-1").message == "Rollback failed (500)"

    def test_update_note(self, api: FakeApi):
        api.respond("POST", "/api/deployments/d-1/note", ApiResponse(200, "<tr>n</tr>"))
        result = DeploymentHistory(api).update_note("d-1", "  hotfix  ")
        assert result.ok
        assert api.calls_to("POST", "/api/deployments/d-1/note") == [{"note": "hotfix"}]

    def test_network_error(self, api: FakeApi):
        api.respond("POST", "/api/deployments/d-1/note", TransportError("refused"))
        result = DeploymentHistory(api).update_note("d-1", "x")
        assert not result.ok
        assert result.message == "Network error, request failed"

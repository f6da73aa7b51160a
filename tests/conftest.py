"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from deployconsole.core.config.loader import ConsoleSettings

from tests.fakes import FakeApi, FakeStreamer, config_payload, json_response, project_payload


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def streamer() -> FakeStreamer:
    return FakeStreamer()


@pytest.fixture
def settings() -> ConsoleSettings:
    return ConsoleSettings(base_url="http://updater.test:8080", session_token="s3cret")


@pytest.fixture
def package(tmp_path: Path) -> Path:
    """A small package file on disk."""
    path = tmp_path / "app.zip"
    path.write_bytes(b"PK\x03\x04" + b"\x00" * 2048)
    return path


@pytest.fixture
def two_projects(api: FakeApi) -> FakeApi:
    """``api`` serving a config with projects ``api`` and ``web`` (default ``web``)."""
    api.respond(
        "GET",
        "/api/config",
        json_response(200, config_payload(
            project_payload("api"),
            project_payload("web", current_version="2.3.9", replace_ignore=["*.sock"]),
            default="web",
        )),
    )
    return api

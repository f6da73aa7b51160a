"""
Tests for console settings — console.yml discovery, env overrides, validation.
"""

import textwrap
from pathlib import Path

import pytest

from deployconsole.core.config.loader import (
    ConsoleSettings,
    find_settings_file,
    load_settings,
)
from deployconsole.core.errors import ConfigError


class TestFindSettingsFile:
    def test_finds_in_current_dir(self, tmp_path: Path):
        (tmp_path / "console.yml").write_text("base_url: http://x\n")
        assert find_settings_file(tmp_path) == (tmp_path / "console.yml").resolve()

    def test_walks_up(self, tmp_path: Path):
        (tmp_path / "console.yml").write_text("base_url: http://x\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_settings_file(nested) == (tmp_path / "console.yml").resolve()

    def test_nothing_below_start(self, tmp_path: Path):
        found = find_settings_file(tmp_path)
        # Only an unrelated file above tmp_path could match
        assert found is None or tmp_path.resolve() not in found.parents


class TestLoadSettings:
    def test_flat_file(self, tmp_path: Path):
        path = tmp_path / "console.yml"
        path.write_text(textwrap.dedent("""\
            base_url: http://10.0.0.5:8080/
            session_token: abc
            timeout: 5
        """))
        settings = load_settings(path, environ={})
        assert settings.base_url == "http://10.0.0.5:8080"
        assert settings.session_token == "abc"
        assert settings.timeout == 5.0
        assert settings.session_cookie == "updater_session"

    def test_wrapped_file(self, tmp_path: Path):
        path = tmp_path / "console.yml"
        path.write_text("console:\n  base_url: http://wrapped\n  page_limit: 50\n")
        settings = load_settings(path, environ={})
        assert settings.base_url == "http://wrapped"
        assert settings.page_limit == 50

    def test_empty_file_uses_defaults(self, tmp_path: Path):
        path = tmp_path / "console.yml"
        path.write_text("")
        assert load_settings(path, environ={}) == ConsoleSettings()

    def test_env_overrides_file(self, tmp_path: Path):
        path = tmp_path / "console.yml"
        path.write_text("base_url: http://file\nsession_token: from-file\n")
        settings = load_settings(
            path,
            environ={"DCON_BASE_URL": "http://env", "DCON_SESSION_TOKEN": "from-env", "DCON_TIMEOUT": "2.5"},
        )
        assert settings.base_url == "http://env"
        assert settings.session_token == "from-env"
        assert settings.timeout == 2.5

    def test_log_section_with_env(self, tmp_path: Path):
        path = tmp_path / "console.yml"
        path.write_text(textwrap.dedent("""\
            console:
              log:
                level: INFO
                poll_level: DEBUG
        """))
        settings = load_settings(path, environ={"DCON_LOG_POLL_LEVEL": "ERROR", "DCON_LOG_FILE": "/tmp/c.log"})
        assert settings.log.level == "INFO"
        assert settings.log.poll_level == "ERROR"
        assert settings.log.file == "/tmp/c.log"
        assert settings.log.stream_level is None

    def test_log_section_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "console.yml"
        path.write_text("log: verbose\n")
        with pytest.raises(ConfigError, match="Invalid console settings"):
            load_settings(path, environ={})

    def test_missing_explicit_path(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.yml", environ={})

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "console.yml"
        path.write_text("base_url: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path, environ={})

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "console.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path, environ={})

    def test_invalid_values(self, tmp_path: Path):
        path = tmp_path / "console.yml"
        path.write_text("timeout: -1\n")
        with pytest.raises(ConfigError, match="Invalid console settings"):
            load_settings(path, environ={})

    def test_no_file_anywhere(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr("deployconsole.core.config.loader.find_settings_file", lambda: None)
        settings = load_settings(environ={"DCON_BASE_URL": "http://only-env/"})
        assert settings.base_url == "http://only-env"

"""Tests for the iiif-auth CLI."""

import json
import logging

import httpx
import pytest
from typer.testing import CliRunner

from iiif_auth import cli
from iiif_auth.client import AuthClient


RESOURCE = "https://example.org/iiif/protected/manifest"

runner = CliRunner()


@pytest.fixture(autouse=True)
def restore_logging():
    """setup_logging() replaces handlers on the package logger; put them back."""
    logger = logging.getLogger("iiif_auth")
    handlers, level, propagate = logger.handlers[:], logger.level, logger.propagate
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
    logger.propagate = propagate


@pytest.fixture
def session_file(tmp_path):
    return tmp_path / "sessions.json"


def use_transport(monkeypatch, handler):
    """Route every HTTP request the CLI makes through ``handler``."""
    def factory(**kwargs):
        return AuthClient(http_client=httpx.Client(transport=httpx.MockTransport(handler)), **kwargs)

    monkeypatch.setattr(cli, "AuthClient", factory)


def protected(request):
    if request.headers.get("authorization") == "Bearer manual":
        return httpx.Response(200, json={"id": RESOURCE, "type": "Manifest", "label": {"en": ["Secret"]}})
    return httpx.Response(
        401,
        json={
            "id": RESOURCE,
            "service": [{"id": "https://example.org/auth/login", "profile": "http://iiif.io/api/auth/1/login"}],
        },
    )


class TestAuthenticateCommand:
    """Tests for `iiif-auth authenticate`."""

    def test_manual_token_is_stored(self, session_file):
        """--token creates a session and writes it to the session file."""
        result = runner.invoke(
            cli.app,
            ["--session-file", str(session_file), "authenticate", RESOURCE, "--token", "manual", "--structured"],
        )

        assert result.exit_code == 0, result.output
        summary = json.loads(result.output)
        assert summary["authType"] == "token"
        assert summary["hasToken"] is True
        stored = json.loads(session_file.read_text())
        assert stored["sessions"][0]["resource_url"] == RESOURCE

    def test_failure_prints_hints(self, monkeypatch, session_file):
        """Auth errors exit 1 with their message."""
        use_transport(monkeypatch, lambda request: httpx.Response(200, json={"id": RESOURCE}))

        result = runner.invoke(
            cli.app, ["--session-file", str(session_file), "authenticate", RESOURCE]
        )

        assert result.exit_code == 1
        assert "No authentication services found" in result.output


class TestInfoCommand:
    """Tests for `iiif-auth info`."""

    def test_markdown(self, monkeypatch, session_file):
        """The default output is the markdown report."""
        use_transport(monkeypatch, protected)

        result = runner.invoke(cli.app, ["--session-file", str(session_file), "info", RESOURCE])

        assert result.exit_code == 0, result.output
        assert "## Authentication Information" in result.output
        assert "### Login Services (1):" in result.output

    def test_structured(self, monkeypatch, session_file):
        """--structured prints JSON."""
        use_transport(monkeypatch, protected)

        result = runner.invoke(
            cli.app, ["--session-file", str(session_file), "info", RESOURCE, "--structured"]
        )

        assert result.exit_code == 0, result.output
        info = json.loads(result.output)
        assert info["requires_auth"] is True
        assert info["auth_api_version"] == "v1"


class TestSessionCommands:
    """probe, get-protected and logout against a stored session."""

    def authenticate(self, session_file):
        result = runner.invoke(
            cli.app, ["--session-file", str(session_file), "authenticate", RESOURCE, "--token", "manual"]
        )
        assert result.exit_code == 0, result.output

    def test_get_protected_without_session(self, monkeypatch, session_file):
        """No session: exit 1 and a clear message."""
        use_transport(monkeypatch, protected)

        result = runner.invoke(cli.app, ["--session-file", str(session_file), "get-protected", RESOURCE])

        assert result.exit_code == 1
        assert "No authentication session found" in result.output

    def test_get_protected_with_session(self, monkeypatch, session_file):
        """A stored token unlocks the resource."""
        use_transport(monkeypatch, protected)
        self.authenticate(session_file)

        result = runner.invoke(
            cli.app, ["--session-file", str(session_file), "get-protected", RESOURCE, "--structured"]
        )

        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["type"] == "Manifest"

    def test_probe(self, monkeypatch, session_file):
        """probe reports access with the stored session and denial without it."""
        use_transport(monkeypatch, protected)

        denied = runner.invoke(cli.app, ["--session-file", str(session_file), "probe", RESOURCE])
        assert denied.exit_code == 2

        self.authenticate(session_file)
        granted = runner.invoke(cli.app, ["--session-file", str(session_file), "probe", RESOURCE])
        assert granted.exit_code == 0, granted.output
        assert "Access granted" in granted.output

    def test_logout(self, monkeypatch, session_file):
        """logout removes the stored session."""
        use_transport(monkeypatch, protected)
        self.authenticate(session_file)

        result = runner.invoke(cli.app, ["--session-file", str(session_file), "logout", RESOURCE])

        assert result.exit_code == 0, result.output
        assert json.loads(session_file.read_text())["sessions"] == []

    def test_invalid_port_range(self, session_file):
        """A reversed port range is a usage error."""
        result = runner.invoke(
            cli.app,
            ["--session-file", str(session_file), "--port-start", "9000", "--port-end", "8000", "info", RESOURCE],
        )
        assert result.exit_code != 0

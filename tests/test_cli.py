"""Tests for the click command line interface."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import pytest
from click.testing import CliRunner

from webshot.auth.form_analyzer import FormAnalysis, LoginCheck
from webshot.cli import cli, resolve_auth
from webshot.errors import ConfigurationError, NavigationError
from webshot.identity import url_hash
from webshot.models.auth import BasicAuth, HeaderAuth


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "WEBSHOT_OUTPUT_DIR", "WEBSHOT_PREFIX", "WEBSHOT_USERNAME",
        "WEBSHOT_PASSWORD", "WEBSHOT_AUTH_HEADER", "WEBSHOT_AUTH_VALUE",
    ):
        monkeypatch.delenv(name, raising=False)


# ============================================================================
# Auth resolution
# ============================================================================


class TestResolveAuth:
    def test_no_auth(self):
        assert resolve_auth(None, None, None, None) is None

    def test_basic_from_flags(self):
        auth = resolve_auth(None, "basic", "alice", "s3cret")
        assert isinstance(auth, BasicAuth)
        assert auth.username == "alice"

    def test_basic_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            resolve_auth(None, "basic", "alice", None)

    def test_basic_from_env(self, monkeypatch):
        monkeypatch.setenv("WEBSHOT_USERNAME", "bob")
        monkeypatch.setenv("WEBSHOT_PASSWORD", "pw")
        auth = resolve_auth(None, "env", None, None)
        assert isinstance(auth, BasicAuth)
        assert auth.password == "pw"

    def test_env_without_variables(self):
        with pytest.raises(ConfigurationError):
            resolve_auth(None, "env", None, None)

    def test_header_from_env(self, monkeypatch):
        monkeypatch.setenv("WEBSHOT_AUTH_HEADER", "X-Api-Key")
        monkeypatch.setenv("WEBSHOT_AUTH_VALUE", "k")
        auth = resolve_auth(None, "header-env", None, None)
        assert isinstance(auth, HeaderAuth)
        assert auth.headers == {"X-Api-Key": "k"}

    def test_config_file_wins(self, tmp_path):
        path = tmp_path / "auth.json"
        path.write_text(json.dumps({"type": "header", "headers": {"Authorization": "Bearer t"}}))
        auth = resolve_auth(str(path), "basic", None, None)
        assert isinstance(auth, HeaderAuth)


# ============================================================================
# capture
# ============================================================================


class TestCaptureCommand:
    def test_capture_prints_result(self, runner, capture_result, tmp_path):
        with patch("webshot.cli._capture", AsyncMock(return_value=capture_result)) as mock_capture:
            result = runner.invoke(cli, ["capture", "https://example.com", "-o", str(tmp_path)])

        assert result.exit_code == 0, result.output
        options = mock_capture.call_args.args[0]
        assert options.url == "https://example.com"
        assert options.output_dir == str(tmp_path)
        assert options.viewport.width == 1280
        assert options.viewport.height == 720
        assert options.diff_threshold == 1.0
        assert options.full_page is True
        assert options.auth is None
        assert "100.00%" in result.output

    def test_capture_options(self, runner, capture_result):
        with patch("webshot.cli._capture", AsyncMock(return_value=capture_result)) as mock_capture:
            result = runner.invoke(cli, [
                "capture", "https://example.com",
                "-p", "home", "-w", "800", "-h", "600", "--no-full-page",
                "-t", "5", "--timeout", "1000",
                "--auth-type", "basic", "--username", "u", "--password", "p",
            ])

        assert result.exit_code == 0, result.output
        options = mock_capture.call_args.args[0]
        assert options.prefix == "home"
        assert options.viewport.width == 800
        assert options.full_page is False
        assert options.diff_threshold == 5.0
        assert options.timeout_ms == 1000
        assert isinstance(options.auth, BasicAuth)

    def test_env_defaults(self, runner, capture_result, monkeypatch):
        monkeypatch.setenv("WEBSHOT_OUTPUT_DIR", "/data/shots")
        monkeypatch.setenv("WEBSHOT_PREFIX", "nightly")
        with patch("webshot.cli._capture", AsyncMock(return_value=capture_result)) as mock_capture:
            result = runner.invoke(cli, ["capture", "https://example.com"])

        assert result.exit_code == 0, result.output
        options = mock_capture.call_args.args[0]
        assert options.output_dir == "/data/shots"
        assert options.prefix == "nightly"

    def test_basic_without_credentials_fails(self, runner):
        with patch("webshot.cli._capture", AsyncMock()) as mock_capture:
            result = runner.invoke(cli, ["capture", "https://example.com", "--auth-type", "basic"])

        assert result.exit_code == 1
        assert "--username" in result.output
        mock_capture.assert_not_called()

    def test_capture_error_exits_nonzero(self, runner):
        failing = AsyncMock(side_effect=NavigationError("Failed to navigate"))
        with patch("webshot.cli._capture", failing):
            result = runner.invoke(cli, ["capture", "https://example.com"])

        assert result.exit_code == 1
        assert "Failed to navigate" in result.output


# ============================================================================
# extract / info
# ============================================================================


class TestRecordCommands:
    def test_extract_directory(self, runner, store, tmp_path, make_record):
        store.write(make_record(sequence=1))
        store.write(make_record(sequence=2))

        result = runner.invoke(cli, ["extract", "-i", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "Extracted 2 image(s)" in result.output
        assert (tmp_path / "extracted" / "site_001_logs.png").exists()
        assert (tmp_path / "extracted" / "site_002_logs.png").exists()

    def test_extract_single_file(self, runner, store, tmp_path, make_record):
        path = store.write(make_record(sequence=1))
        out = tmp_path / "out.png"

        result = runner.invoke(cli, ["extract", "-f", str(path), "-o", str(out)])

        assert result.exit_code == 0, result.output
        assert out.exists()

    def test_extract_empty_directory(self, runner, tmp_path):
        result = runner.invoke(cli, ["extract", "-i", str(tmp_path)])
        assert result.exit_code == 0
        assert "No records found" in result.output

    def test_extract_missing_directory(self, runner, tmp_path):
        result = runner.invoke(cli, ["extract", "-i", str(tmp_path / "nope")])
        assert result.exit_code == 1

    def test_info_lists_identifiers(self, runner, store, tmp_path, make_record):
        store.write(make_record(identifier="aaaa", sequence=1))
        store.write(make_record(identifier="aaaa", sequence=2))
        store.write(make_record(identifier="bbbb", sequence=1))

        result = runner.invoke(cli, ["info", "-o", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "3 record file(s)" in result.output
        assert "aaaa: 2" in result.output
        assert "bbbb: 1" in result.output

    def test_info_for_url(self, runner, store, tmp_path, make_record):
        url = "https://example.com/page"
        identifier = url_hash(url)
        store.write(make_record(identifier=identifier, url=url))
        store.write(make_record(identifier="other"))

        result = runner.invoke(cli, ["info", url, "-o", str(tmp_path)])

        assert result.exit_code == 0, result.output
        assert "1 record file(s)" in result.output
        assert identifier in result.output

    def test_info_missing_directory(self, runner, tmp_path):
        result = runner.invoke(cli, ["info", "-o", str(tmp_path / "nope")])
        assert result.exit_code == 1


# ============================================================================
# analyze-auth
# ============================================================================


class TestAnalyzeAuthCommand:
    @pytest.fixture
    def analysis(self) -> FormAnalysis:
        return FormAnalysis(
            url="https://example.com/login",
            has_login_form=True,
            username_selector="#email",
            password_selector="#password",
            submit_selector="#login",
            score=24,
        )

    def test_writes_config_with_placeholders(self, runner, analysis, tmp_path):
        out = tmp_path / "auth.json"
        with patch("webshot.cli._analyze_auth", AsyncMock(return_value=(analysis, None))):
            result = runner.invoke(cli, ["analyze-auth", "https://example.com/login", "-o", str(out)])

        assert result.exit_code == 0, result.output
        data = json.loads(out.read_text())
        assert data["type"] == "form"
        assert data["credentials"]["username"] == "YOUR_USERNAME"
        assert data["formSelectors"]["usernameSelector"] == "#email"

    def test_reports_login_check(self, runner, analysis, tmp_path):
        out = tmp_path / "auth.json"
        check = LoginCheck(success=True, strategy="url_change", post_login_url="https://example.com/home")
        with patch("webshot.cli._analyze_auth", AsyncMock(return_value=(analysis, check))):
            result = runner.invoke(cli, [
                "analyze-auth", "https://example.com/login", "-u", "alice", "-p", "pw", "-o", str(out),
            ])

        assert result.exit_code == 0, result.output
        assert "Login test succeeded" in result.output
        assert json.loads(out.read_text())["credentials"]["username"] == "alice"

    def test_no_form_exits_nonzero(self, runner, tmp_path):
        analysis = FormAnalysis(url="https://example.com", recommendations=["No login form detected"])
        out = tmp_path / "auth.json"
        with patch("webshot.cli._analyze_auth", AsyncMock(return_value=(analysis, None))):
            result = runner.invoke(cli, ["analyze-auth", "https://example.com", "-o", str(out)])

        assert result.exit_code == 1
        assert not out.exists()


# ============================================================================
# servers
# ============================================================================


class TestServerCommands:
    def test_serve_passes_host_and_port(self, runner):
        with patch("webshot.service.app.run_server") as run_server:
            result = runner.invoke(cli, ["serve", "--host", "0.0.0.0", "--port", "9000"])

        assert result.exit_code == 0, result.output
        run_server.assert_called_once_with("0.0.0.0", 9000)

    def test_mcp_runs_stdio_server(self, runner):
        with patch("webshot.service.mcp_server.run_mcp_server") as run_mcp:
            result = runner.invoke(cli, ["mcp"])

        assert result.exit_code == 0, result.output
        run_mcp.assert_called_once_with()

"""Tests for the command-line interface."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from lynx_fm import cli
from lynx_fm.auth import PendingVerification, Session
from lynx_fm.config import ConfigIncomplete
from lynx_fm.exceptions import (
    IdentityError,
    LoginRequired,
    MediaAuthRejected,
    PlaybackError,
    StorageError,
    TransportError,
)
from lynx_fm.media import PrefetchOutcome, TrackMetadata


def _run(argv: list[str], app: MagicMock) -> int:
    return cli.run_command(cli.parse_args(argv), app_factory=lambda config: app)


@pytest.fixture
def fake_app() -> MagicMock:
    return MagicMock()


class TestParseArgs:
    """Test argument parsing."""

    def test_global_options(self) -> None:
        args = cli.parse_args(["--log-level", "debug", "--device", "USB", "play", "t1"])
        assert args.command == "play"
        assert args.track_id == "t1"
        assert cli.args_to_dict(args) == {
            "logging": {"level": "debug"},
            "playback": {"device": "USB"},
        }

    def test_prefetch_needs_ids(self) -> None:
        with pytest.raises(SystemExit):
            cli.parse_args(["prefetch"])

    def test_command_required(self) -> None:
        with pytest.raises(SystemExit):
            cli.parse_args([])

    def test_version(self, capsys: pytest.CaptureFixture) -> None:
        with pytest.raises(SystemExit) as exc_info:
            cli.parse_args(["--version"])
        assert exc_info.value.code == 0
        assert "lynx-fm" in capsys.readouterr().out


class TestConfigAndStatus:
    """Test commands that only touch local state."""

    def test_status_not_logged_in(self, capsys: pytest.CaptureFixture) -> None:
        assert cli.main(["status"]) == cli.EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Authentication: Not authenticated" in out
        assert "Music Server URL: <not set>" in out

    def test_config_then_status(self, capsys: pytest.CaptureFixture) -> None:
        code = cli.main(
            [
                "config",
                "--supabase-url",
                "https://auth.example/",
                "--supabase-key",
                "anon-key",
                "--server-url",
                "https://music.example",
            ]
        )
        assert code == cli.EXIT_SUCCESS
        assert cli.main(["config"]) == cli.EXIT_SUCCESS
        out = capsys.readouterr().out
        assert "Supabase URL: https://auth.example\n" in out
        assert "Supabase key: set" in out
        assert "Music Server URL: https://music.example" in out

    def test_service_role_key_refused(self, capsys: pytest.CaptureFixture, jwt_factory) -> None:
        key = jwt_factory({"role": "service_role"})
        assert cli.main(["config", "--supabase-key", key]) == cli.EXIT_CONFIG_ERROR
        assert "service_role" in capsys.readouterr().err

    def test_random_without_server(self, capsys: pytest.CaptureFixture) -> None:
        assert cli.main(["random"]) == cli.EXIT_CONFIG_ERROR
        assert "Configuration error" in capsys.readouterr().err

    def test_random_not_logged_in(self, capsys: pytest.CaptureFixture) -> None:
        cli.main(["config", "--server-url", "http://127.0.0.1:9"])
        assert cli.main(["random"]) == cli.EXIT_AUTH_ERROR
        assert "lynx-fm login" in capsys.readouterr().err

    def test_invalid_settings_file(self, tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
        path = tmp_path / "settings.yaml"
        path.write_text("playback:\n  volume: 400\n")
        assert cli.main(["--config", str(path), "status"]) == cli.EXIT_CONFIG_ERROR
        assert "Invalid volume" in capsys.readouterr().err

    def test_status_with_session(self, capsys: pytest.CaptureFixture) -> None:
        session = Session(
            access_token="abc", refresh_token="r1", expires_at=None, server_url="https://m"
        )
        cli.print_session(session)
        out = capsys.readouterr().out
        assert "Authentication: Authenticated" in out
        assert "Token expires: unknown" in out
        assert "Refresh token: present" in out


class TestInteractive:
    """Test prompting commands."""

    def test_login(self, fake_app: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("builtins.input", lambda prompt: "user@example.com")
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt: "correctpw")
        fake_app.login = AsyncMock()

        assert _run(["login"], fake_app) == cli.EXIT_SUCCESS
        fake_app.login.assert_awaited_once_with("user@example.com", "correctpw")

    def test_login_rejected(self, fake_app: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("builtins.input", lambda prompt: "user@example.com")
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt: "wrong")
        fake_app.login = AsyncMock(side_effect=IdentityError("Invalid login credentials", 400))

        assert _run(["login"], fake_app) == cli.EXIT_AUTH_ERROR

    def test_signup_with_verification(
        self, fake_app: MagicMock, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
    ) -> None:
        answers = iter(["new@example.com", "123456"])
        passwords = iter(["short", "longpassword", "longpassword"])
        monkeypatch.setattr("builtins.input", lambda prompt: next(answers))
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt: next(passwords))
        fake_app.signup = AsyncMock(return_value=PendingVerification(email="new@example.com"))
        fake_app.confirm_signup = AsyncMock()

        assert _run(["signup"], fake_app) == cli.EXIT_SUCCESS
        fake_app.signup.assert_awaited_once_with("new@example.com", "longpassword")
        fake_app.confirm_signup.assert_awaited_once_with("new@example.com", "123456")
        assert "at least 8 characters" in capsys.readouterr().out

    def test_interrupted_prompt(self, fake_app: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        def interrupt(prompt: str) -> str:
            raise KeyboardInterrupt

        monkeypatch.setattr("builtins.input", interrupt)
        assert _run(["login"], fake_app) == cli.EXIT_INTERRUPTED

    def test_logout_offline(self, fake_app: MagicMock, capsys: pytest.CaptureFixture) -> None:
        fake_app.logout = AsyncMock(return_value=False)
        assert _run(["logout"], fake_app) == cli.EXIT_SUCCESS
        assert "Local session cleared" in capsys.readouterr().out


class TestErrors:
    """Test error reporting and exit codes."""

    @pytest.mark.parametrize(
        "error, code",
        [
            (LoginRequired("Not logged in. Run 'lynx-fm login'."), cli.EXIT_AUTH_ERROR),
            (ConfigIncomplete("Music server URL is not configured"), cli.EXIT_CONFIG_ERROR),
            (TransportError("Health check failed: refused", "http://m/health"), cli.EXIT_NETWORK_ERROR),
            (StorageError("Cannot write", "/tmp/x"), cli.EXIT_STORAGE_ERROR),
            (PlaybackError("No audio output devices found"), cli.EXIT_PLAYBACK_ERROR),
        ],
    )
    def test_exit_codes(self, fake_app: MagicMock, error: Exception, code: int) -> None:
        fake_app.random_track = AsyncMock(side_effect=error)
        assert _run(["random"], fake_app) == code

    def test_media_auth_diagnostics(
        self, fake_app: MagicMock, capsys: pytest.CaptureFixture
    ) -> None:
        fake_app.random_track = AsyncMock(
            side_effect=MediaAuthRejected(
                "Media server rejected the request (HTTP 401)",
                401,
                body='{"error": "bad jwt"}',
                url="https://music.example/random",
                headers_sent={"Authorization": "Bearer abc (3 chars)"},
            )
        )
        assert _run(["random"], fake_app) == cli.EXIT_AUTH_ERROR
        err = capsys.readouterr().err
        assert "Request: https://music.example/random" in err
        assert "Authorization: Bearer abc (3 chars)" in err
        assert '{"error": "bad jwt"}' in err

    def test_random_plays_track(self, fake_app: MagicMock, capsys: pytest.CaptureFixture) -> None:
        fake_app.random_track = AsyncMock(return_value=TrackMetadata("t1", title="Song"))
        fake_app.play = AsyncMock()
        assert _run(["random"], fake_app) == cli.EXIT_SUCCESS
        fake_app.play.assert_awaited_once_with("t1")
        assert "Playing: Song" in capsys.readouterr().out


class TestPrefetch:
    """Test the prefetch report."""

    def test_partial_failure(
        self, fake_app: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture
    ) -> None:
        fake_app.prefetch = AsyncMock(
            return_value={
                "A": PrefetchOutcome("A", ok=True, path=tmp_path / "A", bytes_written=10),
                "B": PrefetchOutcome("B", ok=False, error=TransportError("connection reset")),
                "C": PrefetchOutcome("C", ok=True, path=tmp_path / "C", bytes_written=20),
            }
        )
        assert _run(["prefetch", "A", "B", "C"], fake_app) == cli.EXIT_PARTIAL_FAILURE
        out = capsys.readouterr().out
        assert "failed  B: connection reset" in out
        assert "Prefetched 2/3 track(s)." in out
        fake_app.prefetch.assert_awaited_once_with(["A", "B", "C"], directory=None)

    def test_all_ok(self, fake_app: MagicMock, tmp_path: Path) -> None:
        fake_app.prefetch = AsyncMock(
            return_value={"A": PrefetchOutcome("A", ok=True, path=tmp_path / "A")}
        )
        assert _run(["prefetch", "A", "--dir", str(tmp_path)], fake_app) == cli.EXIT_SUCCESS
        fake_app.prefetch.assert_awaited_once_with(["A"], directory=tmp_path)


class TestLoginOnDemand:
    """Test the login prompt offered when a command needs a session."""

    @pytest.fixture
    def credentials(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr("builtins.input", lambda prompt: "user@example.com")
        monkeypatch.setattr(cli.getpass, "getpass", lambda prompt: "correctpw")

    def test_terminal_logs_in_and_reruns(
        self,
        fake_app: MagicMock,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture,
        credentials: None,
    ) -> None:
        monkeypatch.setattr(cli, "_stdin_is_tty", lambda: True)
        fake_app.random_track = AsyncMock(
            side_effect=[LoginRequired("Not logged in."), TrackMetadata("t1", title="Song")]
        )
        fake_app.login = AsyncMock()
        fake_app.play = AsyncMock()

        assert _run(["random"], fake_app) == cli.EXIT_SUCCESS
        fake_app.login.assert_awaited_once_with("user@example.com", "correctpw")
        assert fake_app.random_track.await_count == 2
        fake_app.play.assert_awaited_once_with("t1")
        out = capsys.readouterr().out
        assert "You need to log in first." in out
        assert "Playing: Song" in out

    def test_no_terminal_exits(self, fake_app: MagicMock, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(cli, "_stdin_is_tty", lambda: False)
        fake_app.random_track = AsyncMock(side_effect=LoginRequired("Not logged in."))
        fake_app.login = AsyncMock()

        assert _run(["random"], fake_app) == cli.EXIT_AUTH_ERROR
        fake_app.login.assert_not_awaited()

    def test_only_one_retry(
        self, fake_app: MagicMock, monkeypatch: pytest.MonkeyPatch, credentials: None
    ) -> None:
        monkeypatch.setattr(cli, "_stdin_is_tty", lambda: True)
        fake_app.random_track = AsyncMock(side_effect=LoginRequired("Not logged in."))
        fake_app.login = AsyncMock()

        assert _run(["random"], fake_app) == cli.EXIT_AUTH_ERROR
        fake_app.login.assert_awaited_once()
        assert fake_app.random_track.await_count == 2

    def test_failed_login_is_reported(
        self, fake_app: MagicMock, monkeypatch: pytest.MonkeyPatch, credentials: None
    ) -> None:
        monkeypatch.setattr(cli, "_stdin_is_tty", lambda: True)
        fake_app.random_track = AsyncMock(side_effect=LoginRequired("Not logged in."))
        fake_app.login = AsyncMock(side_effect=IdentityError("Invalid login credentials", 400))

        assert _run(["random"], fake_app) == cli.EXIT_AUTH_ERROR
        assert fake_app.random_track.await_count == 1

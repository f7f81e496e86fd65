"""
Lynx.fm CLI entry point.

Provides the command-line interface for streaming music from a Lynx.fm
server.
"""

import argparse
import asyncio
import getpass
import logging
import sys
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from lynx_fm import __version__
from lynx_fm.app import LynxFM
from lynx_fm.auth import PendingVerification, Session
from lynx_fm.config import ConfigError, load_config
from lynx_fm.exceptions import (
    AuthRejected,
    IdentityError,
    InvalidRefreshToken,
    LoginRequired,
    LynxError,
    MediaAuthRejected,
    MediaServerError,
    PlaybackError,
    StorageError,
    TransportError,
)
from lynx_fm.playback import format_device_list

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1
EXIT_AUTH_ERROR = 2
EXIT_NETWORK_ERROR = 3
EXIT_STORAGE_ERROR = 4
EXIT_PARTIAL_FAILURE = 5
EXIT_PLAYBACK_ERROR = 6
EXIT_INTERRUPTED = 130

MIN_PASSWORD_LENGTH = 8


def setup_logging(level: str = "warning") -> None:
    """Configure logging to stderr."""
    log_level = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
        force=True,
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="lynx-fm",
        description="Lynx.fm CLI - Stream music from your Lynx.fm server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lynx-fm config --supabase-url https://xyz.supabase.co --supabase-key <anon key> \\
                 --server-url https://music.example.com
  lynx-fm login
  lynx-fm random
  lynx-fm prefetch 1234 5678

Environment Variables:
  LYNX_FM_HOME, LYNX_FM_LOG_LEVEL, LYNX_FM_AUDIO_DEVICE, LYNX_FM_VOLUME,
  LYNX_FM_PREFETCH_DIR, LYNX_FM_PREFETCH_CONCURRENCY, LYNX_FM_HTTP_TIMEOUT,
  LYNX_FM_REFRESH_MARGIN
""",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config",
        type=Path,
        metavar="PATH",
        help="Path to settings file (default: ~/.lynx-fm/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error"],
        metavar="LEVEL",
        help="Log level: debug, info, warning, error",
    )
    parser.add_argument(
        "--device",
        metavar="TEXT",
        help="Audio output device: 'default', index or name",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    config_cmd = commands.add_parser(
        "config", help="Configure provider and server URLs (no flags: show configuration)"
    )
    config_cmd.add_argument("--supabase-url", metavar="URL", help="Identity provider URL")
    config_cmd.add_argument("--supabase-key", metavar="KEY", help="Identity provider anon key")
    config_cmd.add_argument("--server-url", metavar="URL", help="Lynx.fm media server URL")

    commands.add_parser("signup", help="Sign up for a new account")
    commands.add_parser("login", help="Log in to your account")
    commands.add_parser("logout", help="Log out from your account")
    commands.add_parser("status", help="Show session state")
    commands.add_parser("health", help="Check if the server is healthy")
    commands.add_parser("random", help="Play a random track")

    play_cmd = commands.add_parser("play", help="Play a specific track")
    play_cmd.add_argument("track_id", help="Track ID to play")

    prefetch_cmd = commands.add_parser("prefetch", help="Download tracks for faster playback")
    prefetch_cmd.add_argument("track_ids", nargs="+", metavar="TRACK_ID", help="Track IDs")
    prefetch_cmd.add_argument(
        "--dir", type=Path, metavar="PATH", help="Destination (default: ~/.lynx-fm/tracks)"
    )

    commands.add_parser("devices", help="List audio output devices")

    return parser.parse_args(argv)


def args_to_dict(args: argparse.Namespace) -> dict:
    """Convert argparse namespace to nested settings dict."""
    result: dict = {}
    if getattr(args, "log_level", None):
        result.setdefault("logging", {})["level"] = args.log_level
    if getattr(args, "device", None):
        result.setdefault("playback", {})["device"] = args.device
    return result


def _prompt(label: str) -> str:
    value = input(f"{label}: ").strip()
    while not value:
        value = input(f"{label}: ").strip()
    return value


def _prompt_password(confirm: bool = False) -> str:
    while True:
        password = getpass.getpass("Password: ")
        if confirm and len(password) < MIN_PASSWORD_LENGTH:
            print(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
            continue
        if confirm and getpass.getpass("Confirm password: ") != password:
            print("Passwords don't match.")
            continue
        return password


def _format_expiry(session: Session) -> str:
    if session.expires_at is None:
        return "unknown"
    remaining = int(session.expires_at - time.time())
    stamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(session.expires_at))
    if remaining <= 0:
        return f"{stamp} (expired)"
    return f"{stamp} (in {remaining // 60}m {remaining % 60}s)"


def print_session(session: Session) -> None:
    """Print endpoint configuration and authentication state."""
    print("Current configuration:")
    print(f"  Supabase URL: {session.provider_url or '<not set>'}")
    print(f"  Supabase key: {'set' if session.provider_key else '<not set>'}")
    print(f"  Music Server URL: {session.server_url or '<not set>'}")
    if session.is_authenticated:
        print("  Authentication: Authenticated")
        print(f"  Token expires: {_format_expiry(session)}")
        print(f"  Refresh token: {'present' if session.refresh_token else 'none'}")
    else:
        print("  Authentication: Not authenticated")


async def cmd_config(app: LynxFM, args: argparse.Namespace) -> int:
    if args.supabase_url is None and args.supabase_key is None and args.server_url is None:
        print_session(app.store.load())
        return EXIT_SUCCESS
    app.configure(
        provider_url=args.supabase_url,
        provider_key=args.supabase_key,
        server_url=args.server_url,
    )
    print("Configuration updated successfully.")
    return EXIT_SUCCESS


async def cmd_signup(app: LynxFM, args: argparse.Namespace) -> int:
    print("=== Create a new account ===")
    email = _prompt("Email")
    password = _prompt_password(confirm=True)

    result = await app.signup(email, password)
    if isinstance(result, PendingVerification):
        print("Signup successful! Please check your email for a verification code.")
        code = _prompt("Verification code")
        await app.confirm_signup(result.email, code)
        print("Email verification successful! You are now logged in.")
    else:
        print("Signup successful! You are now logged in.")
    return EXIT_SUCCESS


async def cmd_login(app: LynxFM, args: argparse.Namespace) -> int:
    print("=== Login to your account ===")
    email = _prompt("Email")
    password = _prompt_password()
    await app.login(email, password)
    print("Login successful!")
    return EXIT_SUCCESS


async def cmd_logout(app: LynxFM, args: argparse.Namespace) -> int:
    if await app.logout():
        print("Logout successful!")
    else:
        print("Local session cleared (the provider could not be notified).")
    return EXIT_SUCCESS


async def cmd_status(app: LynxFM, args: argparse.Namespace) -> int:
    print_session(app.store.load())
    return EXIT_SUCCESS


async def cmd_health(app: LynxFM, args: argparse.Namespace) -> int:
    status = await app.health()
    print(f"Server is healthy! (HTTP {status.status})")
    if status.body.strip():
        print(status.body.strip())
    return EXIT_SUCCESS


async def cmd_random(app: LynxFM, args: argparse.Namespace) -> int:
    track = await app.random_track()
    print(f"Playing: {track.display_name()}")
    await app.play(track.track_id)
    return EXIT_SUCCESS


async def cmd_play(app: LynxFM, args: argparse.Namespace) -> int:
    print(f"Playing: {args.track_id}")
    await app.play(args.track_id)
    return EXIT_SUCCESS


async def cmd_prefetch(app: LynxFM, args: argparse.Namespace) -> int:
    outcomes = await app.prefetch(args.track_ids, directory=args.dir)
    failed = 0
    for track_id, outcome in outcomes.items():
        if outcome.ok:
            print(f"  ok      {track_id} -> {outcome.path} ({outcome.bytes_written} bytes)")
        else:
            failed += 1
            print(f"  failed  {track_id}: {describe_error(outcome.error)}")
    print(f"Prefetched {len(outcomes) - failed}/{len(outcomes)} track(s).")
    return EXIT_PARTIAL_FAILURE if failed else EXIT_SUCCESS


async def cmd_devices(app: LynxFM, args: argparse.Namespace) -> int:
    listing = format_device_list()
    print(listing or "No audio output devices found.")
    return EXIT_SUCCESS


COMMANDS: dict[str, Callable[[LynxFM, argparse.Namespace], Awaitable[int]]] = {
    "config": cmd_config,
    "signup": cmd_signup,
    "login": cmd_login,
    "logout": cmd_logout,
    "status": cmd_status,
    "health": cmd_health,
    "random": cmd_random,
    "play": cmd_play,
    "prefetch": cmd_prefetch,
    "devices": cmd_devices,
}


def _stdin_is_tty() -> bool:
    return sys.stdin is not None and sys.stdin.isatty()


async def run_handler(
    app: LynxFM,
    args: argparse.Namespace,
    handler: Callable[[LynxFM, argparse.Namespace], Awaitable[int]],
    interactive: bool,
) -> int:
    """
    Run a command handler.

    When the command needs a login and a terminal is attached, prompt for
    credentials and run the command once more.
    """
    try:
        return await handler(app, args)
    except LoginRequired as e:
        if not interactive:
            raise
        logger.info(f"Login required: {e}")
        print("You need to log in first.")
    await cmd_login(app, args)
    return await handler(app, args)


def describe_error(error: Optional[BaseException]) -> str:
    """One-line description of an error for per-item reports."""
    if error is None:
        return "unknown error"
    if isinstance(error, AuthRejected):
        detail = f" {error.body.strip()}" if error.body.strip() else ""
        return f"{error} (HTTP {error.status}){detail}"
    return str(error)


def report_error(error: LynxError) -> int:
    """Print an error for the user and return the exit code for it."""
    if isinstance(error, MediaAuthRejected):
        print(f"Error: {error}", file=sys.stderr)
        print(error.diagnostics(), file=sys.stderr)
        return EXIT_AUTH_ERROR
    if isinstance(error, (LoginRequired, InvalidRefreshToken)):
        print(f"Error: {error}", file=sys.stderr)
        return EXIT_AUTH_ERROR
    if isinstance(error, AuthRejected):
        print(f"Authentication failed: {error} (HTTP {error.status})", file=sys.stderr)
        return EXIT_AUTH_ERROR
    if isinstance(error, ConfigError):
        print(f"Configuration error: {error}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    if isinstance(error, TransportError):
        print(f"Network error: {error}", file=sys.stderr)
        print("Check your network connection and the configured URLs.", file=sys.stderr)
        return EXIT_NETWORK_ERROR
    if isinstance(error, MediaServerError):
        print(f"Server error: {error}", file=sys.stderr)
        if error.body.strip():
            print(f"Response body: {error.body.strip()}", file=sys.stderr)
        return EXIT_NETWORK_ERROR
    if isinstance(error, IdentityError):
        if 400 <= error.status < 500:
            print(f"Authentication failed: {error}", file=sys.stderr)
            return EXIT_AUTH_ERROR
        print(f"Identity provider error: {error}", file=sys.stderr)
        return EXIT_NETWORK_ERROR
    if isinstance(error, StorageError):
        print(f"Storage error: {error}", file=sys.stderr)
        return EXIT_STORAGE_ERROR
    if isinstance(error, PlaybackError):
        print(f"Playback error: {error}", file=sys.stderr)
        return EXIT_PLAYBACK_ERROR
    print(f"Error: {error}", file=sys.stderr)
    return EXIT_NETWORK_ERROR


def run_command(args: argparse.Namespace, app_factory: Callable[..., Any] = LynxFM) -> int:
    """
    Load settings and run the selected command.

    Returns:
        Exit code
    """
    setup_logging("warning")

    try:
        config = load_config(args.config, args_to_dict(args))
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    setup_logging(config.logging.level)
    logger.debug(f"lynx-fm v{__version__}, home {config.home}")

    handler = COMMANDS[args.command]
    try:
        app = app_factory(config)
        return asyncio.run(run_handler(app, args, handler, _stdin_is_tty()))
    except LynxError as e:
        return report_error(e)
    except (KeyboardInterrupt, EOFError):
        print("\nInterrupted", file=sys.stderr)
        return EXIT_INTERRUPTED


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code: 0=success, 1=config error, 2=auth error, 3=network error,
        4=storage error, 5=some prefetches failed, 6=playback error,
        130=interrupted
    """
    args = parse_args(argv)
    return run_command(args)


if __name__ == "__main__":
    sys.exit(main())

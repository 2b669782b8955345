"""
tcplink - Main Entry Point

Line-oriented TCP client with a curses front end. The front end talks to a
ConnectionCoordinator, which owns the socket session and the receive loop.

Usage:
  tcplink                         # TUI, pickup view
  tcplink --view console --connect --host 10.0.0.5 --port 9000
  tcplink --echo-server --port 9000
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional

from .network.connection_coordinator import ConnectionCoordinator
from .utils.config import VIEWS, ClientConfig
from .utils.echo_server import EchoServer
from .utils.event_bus import EventBus

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def _get_log_dir() -> Path:
    return Path.home() / ".cache" / "tcplink" / "logs"


def _get_error_log_path() -> Path:
    """Get the path to the error log file."""
    try:
        log_dir = _get_log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)
        return log_dir / "tcplink_errors.log"
    except OSError:
        return Path("/tmp/tcplink_errors.log")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tcplink",
        description="Line-oriented TCP client with a terminal front end",
    )
    parser.add_argument("--host", help="Server address (overrides settings)")
    parser.add_argument("--port", type=int, help="Server port (overrides settings)")
    parser.add_argument("--config", type=Path, default=None,
                        help="Settings file (default ~/.config/tcplink/settings.json)")
    parser.add_argument("--connect", action="store_true",
                        help="Connect to the server on start-up")
    parser.add_argument("--view", choices=VIEWS, default=None,
                        help="View shown first")
    parser.add_argument("--echo-server", action="store_true",
                        help="Run a line echo server instead of the client")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (default INFO)")
    return parser.parse_args(argv)


def _setup_logging(level: str, to_file: bool) -> None:
    """Configure root logging; the TUI owns the terminal, so it logs to a file."""
    kwargs = {"level": getattr(logging, level), "format": LOG_FORMAT}
    if to_file:
        try:
            log_dir = _get_log_dir()
            log_dir.mkdir(parents=True, exist_ok=True)
            kwargs["filename"] = str(log_dir / "tcplink.log")
        except OSError:
            kwargs["filename"] = "/tmp/tcplink.log"
    logging.basicConfig(**kwargs)


def _run_echo_server(host: Optional[str], port: Optional[int]) -> None:
    server = EchoServer(host or "127.0.0.1", port or 0)
    bound = server.start()
    print(f"tcplink echo server listening on {host or '127.0.0.1'}:{bound}")
    print("Press Ctrl+C to stop")
    try:
        while True:
            time.sleep(1)
    finally:
        server.stop()


def _run_client(args: argparse.Namespace) -> None:
    from .tui.app import run_tui

    config = ClientConfig(args.config)
    overrides = {}
    if args.host:
        overrides["server_address"] = args.host
    if args.port is not None:
        overrides["server_port"] = args.port
    if args.view:
        overrides["start_view"] = args.view
    config.update(overrides)

    event_bus = EventBus()
    coordinator = ConnectionCoordinator.from_config(config, event_bus=event_bus)
    if args.connect:
        coordinator.connect(config.get("server_address"), config.get("server_port"))

    try:
        run_tui(coordinator, config, event_bus)
    finally:
        # the app releases on a normal quit; release() is idempotent
        coordinator.release()


def main() -> None:
    """Command-line entry point."""
    args = _parse_args()
    _setup_logging(args.log_level, to_file=not args.echo_server)

    exit_code = 0
    try:
        if args.echo_server:
            _run_echo_server(args.host, args.port)
        else:
            _run_client(args)
    except KeyboardInterrupt:
        print("\nShutting down...")
    except Exception as e:
        # Log full traceback to error log file
        import datetime
        import traceback

        error_log = _get_error_log_path()
        try:
            with open(error_log, "a") as f:
                f.write(f"\n{'=' * 60}\n")
                f.write(f"[{datetime.datetime.now().isoformat()}] FATAL ERROR\n")
                f.write(traceback.format_exc())
                f.write(f"{'=' * 60}\n")
        except OSError:
            pass

        print("\ntcplink encountered a fatal error:\n")
        print(f"  {type(e).__name__}: {e}\n")
        print(f"Full error details saved to:\n  {error_log}\n")
        exit_code = 1
    finally:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()

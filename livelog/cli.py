"""
livelog/cli.py — Command-line interface for the live log server.
Serves the viewer bundle and streams logs from a followed file, from a
demo generator, or both.
"""
import argparse
import logging
import random
import signal
import sys
import threading
from pathlib import Path
from typing import Optional

from livelog import __version__
from livelog.colors import (
    ColorFormatter,
    format_banner_line,
    format_banner_separator,
    format_banner_tag,
    format_banner_title,
)
from livelog.config import ServerConfig
from livelog.errors import BindError
from livelog.follow import FileFollower
from livelog.server import LogServer

# Valid log level names (for CLI validation)
LOG_LEVELS = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}

DEMO_INTERVAL = 2.0
DEMO_MESSAGES = [
    "Application started",
    "Network request timed out",
    "User signed in",
    "Database connection failed",
    "File upload finished",
    "Memory usage is high",
    "Cache cleared",
    "API call raised an exception",
]

log = logging.getLogger("livelog.cli")


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Install the colored formatter on the ``livelog`` logger."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter(show_timestamp=level <= logging.DEBUG))
    logger = logging.getLogger("livelog")
    logger.handlers[:] = [handler]
    logger.setLevel(level)
    logger.propagate = False
    return logger


def run_demo(server: LogServer, stop: threading.Event, interval: float = DEMO_INTERVAL):
    """Emit a random event every *interval* seconds until *stop* is set."""
    while not stop.wait(interval):
        server.emit(
            random.choice(("info", "warning", "error")),
            random.choice(DEMO_MESSAGES),
        )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="livelog",
        description="livelog - stream log events to a browser over WebSocket",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  livelog --demo                        Serve the viewer with sample events
  livelog --follow /var/log/app.log     Stream lines appended to a file
  livelog --port 9000 --root ./web      Custom port and viewer bundle
        """,
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Bind socket to this host (default: $LIVELOG_HOST or 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Bind socket to this port (default: $LIVELOG_PORT or 8080)",
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Directory holding the web bundle (default: bundled viewer)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Seconds any single read or write may take (default: 5)",
    )
    parser.add_argument(
        "--max-requests",
        type=int,
        default=None,
        help="HTTP requests served per connection before closing (default: 10)",
    )
    parser.add_argument(
        "--follow",
        type=Path,
        default=None,
        metavar="FILE",
        help="Stream lines appended to FILE to connected viewers",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        default=False,
        help=f"Emit a random sample event every {DEMO_INTERVAL:g} seconds",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=LOG_LEVELS.keys(),
        help="Set the server's own log level (default: info)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def build_config(args: argparse.Namespace) -> ServerConfig:
    """Overlay CLI flags on the environment configuration."""
    config = ServerConfig.from_env()
    if args.host is not None:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.root is not None:
        config.root = args.root
    if args.timeout is not None:
        config.timeout = args.timeout
    if args.max_requests is not None:
        config.max_requests = args.max_requests
    return config


def print_banner(config: ServerConfig, args: argparse.Namespace):
    print(format_banner_title("livelog", __version__))
    print(format_banner_separator())
    print(format_banner_line("Address", f"http://{config.host}:{config.port}"))
    print(format_banner_line("Viewer", str(config.root)))
    print(format_banner_line("Stream", f"ws://{config.host}:{config.port}/ws"))
    if args.follow:
        print(format_banner_line("Follow", format_banner_tag(str(args.follow))))
    if args.demo:
        print(format_banner_line("Mode", format_banner_tag("demo")))
    print(format_banner_separator())
    print()


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)
    setup_logging(LOG_LEVELS[parsed_args.log_level])

    config = build_config(parsed_args)
    try:
        config.validate()
    except ValueError as e:
        parser.error(str(e))

    print_banner(config, parsed_args)

    server = LogServer(config)
    try:
        server.start(config.port)
    except BindError:
        return 1

    stop = threading.Event()

    def signal_handler(signum, frame):
        log.info("Received shutdown signal")
        stop.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    follower = None
    if parsed_args.follow:
        follower = FileFollower(server, parsed_args.follow)
        follower.start()

    try:
        if parsed_args.demo:
            run_demo(server, stop)
        else:
            while not stop.wait(0.5):
                pass
    finally:
        if follower is not None:
            follower.stop()
        server.stop()
        log.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
=============================================================================
GATEWAY CLI ENTRY POINT
=============================================================================

    # Run with defaults (0.0.0.0:7041, application.py)
    python -m gatewayserver

    # Port and default handler module, as the web-server module's
    # launcher passes them
    python -m gatewayserver 7041 myapp/handlers.py

    # Threads instead of processes (no fork/spawn available, debugging)
    python -m gatewayserver --worker-mode thread

    # JSON access log
    python -m gatewayserver --log-format json

Command-line arguments override GATEWAY_* environment variables, which
override the GatewayConfig defaults.

=============================================================================
"""

import argparse
import sys

from . import __version__
from .config import GatewayConfig, WORKER_MODES, LOG_FORMATS
from .server import GatewayServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gatewayserver",
        description="Gateway between a web-server module and Python handler functions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m gatewayserver                          # Run with defaults
  python -m gatewayserver 7041 application.py      # Port and default app
  python -m gatewayserver --worker-mode thread     # One thread per connection
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # POSITIONAL ARGUMENTS (launcher convention)
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "port",
        type=int,
        nargs="?",
        default=None,
        help="Port to listen on (default: GATEWAY_PORT or 7041)"
    )

    parser.add_argument(
        "app",
        nargs="?",
        default=None,
        help="Default handler module, module:attr or path to a .py file "
             "(default: GATEWAY_APP or application.py)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK AND WORKER ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=None,
        help="Host to bind to (default: GATEWAY_HOST or 0.0.0.0)"
    )

    parser.add_argument(
        "--worker-mode", "-w",
        choices=WORKER_MODES,
        default=None,
        help="Isolate each connection in a process or a thread (default: process)"
    )

    parser.add_argument(
        "--grace", "-g",
        type=float,
        default=None,
        help="Shutdown grace period in seconds (default: 1.0)"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=None,
        help="Access log format (default: text)"
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"gatewayserver {__version__}"
    )

    return parser


def config_from_args(args: argparse.Namespace) -> GatewayConfig:
    """Environment-based configuration with explicit CLI values applied on top."""
    config = GatewayConfig.from_env()

    overrides = {
        "port": args.port,
        "app": args.app,
        "host": args.host,
        "worker_mode": args.worker_mode,
        "grace_period": args.grace,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)

    return config


def main(argv=None):
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
        server = GatewayServer(config)
        server.run()
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()

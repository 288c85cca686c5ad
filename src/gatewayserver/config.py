"""
=============================================================================
GATEWAY CONFIGURATION
=============================================================================

Centralized configuration for the gateway listener and its workers.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m gatewayserver 7041 application.py               │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── GATEWAY_PORT=7041 python -m gatewayserver                 │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


WORKER_MODES = ("process", "thread")
LOG_FORMATS = ("text", "json")


def _default_server_name() -> str:
    from . import __version__
    return f"gatewayserver/{__version__}"


@dataclass
class GatewayConfig:
    """
    Configuration for the gateway.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, max_request_size

    APPLICATION
    - app

    WORKERS
    - worker_mode, start_method, output_buffer_size, grace_period

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """Address to bind to. The web-server module usually runs locally."""

    port: int = 7041
    """Port the web-server module connects to."""

    backlog: int = 128
    """Maximum number of queued connections."""

    buffer_size: int = 65536
    """
    Bytes requested per read. Reads are buffered, so a request may span
    several reads and one read may carry several requests.
    """

    max_request_size: int = 64 * 1024 * 1024  # 64 MB
    """
    Largest request envelope a worker accepts. A larger declared length
    is a framing error and closes the connection.
    """

    # ─────────────────────────────────────────────────────────────────────
    # APPLICATION
    # ─────────────────────────────────────────────────────────────────────

    app: str = "application.py"
    """
    Default handler module, used when a request names no function.
    Accepts a module name, "module:attr" or a path to a .py file.
    """

    # ─────────────────────────────────────────────────────────────────────
    # WORKERS
    # ─────────────────────────────────────────────────────────────────────

    worker_mode: str = "process"
    """
    How a connection's worker is isolated.
    - "process" - one OS process per connection
    - "thread"  - one thread per connection, nothing shared but the log
    """

    start_method: Optional[str] = "spawn"
    """
    multiprocessing start method for worker processes. "spawn" starts each
    worker from a clean interpreter that inherits no listener state.
    None = platform default.
    """

    output_buffer_size: int = 2048
    """Initial size of each worker's response scratch buffer."""

    grace_period: float = 1.0
    """
    Seconds the listener waits after signalling workers to stop, and
    seconds a worker waits before exiting once it drains.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """Access log format: 'json' or 'text'."""

    server_name: str = ""
    """Prefix of the self-identification banner. Empty = gatewayserver/<version>."""

    def __post_init__(self):
        if not self.server_name:
            self.server_name = _default_server_name()

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        GATEWAY_HOST         Bind address (default: 0.0.0.0)
        GATEWAY_PORT         Listening port (default: 7041)
        GATEWAY_APP          Default handler module (default: application.py)
        GATEWAY_WORKER_MODE  process | thread (default: process)
        GATEWAY_GRACE        Shutdown grace period in seconds (default: 1.0)
        GATEWAY_LOG_LEVEL    Logging level (default: INFO)
        GATEWAY_LOG_FORMAT   text | json (default: text)

        =====================================================================
        """
        return cls(
            host=os.getenv("GATEWAY_HOST", "0.0.0.0"),
            port=int(os.getenv("GATEWAY_PORT", "7041")),
            app=os.getenv("GATEWAY_APP", "application.py"),
            worker_mode=os.getenv("GATEWAY_WORKER_MODE", "process"),
            grace_period=float(os.getenv("GATEWAY_GRACE", "1.0")),
            log_level=os.getenv("GATEWAY_LOG_LEVEL", "INFO"),
            log_format=os.getenv("GATEWAY_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid setting.
        """
        # Port 0 lets the OS pick a free port
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_request_size < 15:
            raise ValueError("max_request_size must be >= 15 (the request header)")

        if self.output_buffer_size < 16:
            raise ValueError("output_buffer_size must be >= 16")

        if self.grace_period < 0:
            raise ValueError("grace_period must be >= 0")

        if self.worker_mode not in WORKER_MODES:
            raise ValueError(
                f"Unknown worker_mode {self.worker_mode!r}, expected one of {WORKER_MODES}"
            )

        if self.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Unknown log_format {self.log_format!r}, expected one of {LOG_FORMATS}"
            )

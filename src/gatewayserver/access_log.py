"""
=============================================================================
ACCESS LOGGING
=============================================================================

One structured log record per request served by a worker.

=============================================================================
LOG FORMATS
=============================================================================

    TEXT FORMAT (default):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ [48213] #17 myapp.orders "HTTP/1.1 200 OK" 1234 5.21ms              │
    │ ─────────────────────────────────────────────────────────────────── │
    │ Worker  No  Function     Status line        Size Duration           │
    └─────────────────────────────────────────────────────────────────────┘

    JSON FORMAT (for log aggregators):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ {"worker": 48213, "request_no": 17, "function": "myapp.orders",     │
    │  "status": "HTTP/1.1 200 OK", "content_length": 1234,               │
    │  "duration_ms": 5.21, "timestamp": "2024-06-10T10:55:36+00:00"}     │
    └─────────────────────────────────────────────────────────────────────┘

Records go to the "gatewayserver.access" logger, so they can be routed
separately:

    logging.getLogger("gatewayserver.access").addHandler(file_handler)

=============================================================================
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone


logger = logging.getLogger("gatewayserver.access")


def status_line(body: bytes) -> str:
    """First line of an HTTP response body, or '-' when there is none."""
    line = body.split(b"\r\n", 1)[0][:80]
    return line.decode("latin-1") if line else "-"


@dataclass
class RequestLog:
    """Structured log entry for one request."""

    worker: int
    request_no: int
    function: str
    status: str
    content_length: int
    duration_ms: float
    timestamp: str

    @classmethod
    def create(
        cls,
        worker: int,
        request_no: int,
        function: str,
        body: bytes,
        duration_ms: float,
    ) -> "RequestLog":
        return cls(
            worker=worker,
            request_no=request_no,
            function=function,
            status=status_line(body),
            content_length=len(body),
            duration_ms=duration_ms,
            timestamp=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )

    def to_dict(self) -> dict:
        return {
            "worker": self.worker,
            "request_no": self.request_no,
            "function": self.function,
            "status": self.status,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }

    def to_text(self) -> str:
        return (
            f'[{self.worker}] #{self.request_no} {self.function or "-"} '
            f'"{self.status}" {self.content_length} {self.duration_ms:.2f}ms'
        )


def log_request(entry: RequestLog, log_format: str = "text") -> None:
    """Emit entry on the access logger in the requested format."""
    if log_format == "json":
        logger.info(json.dumps(entry.to_dict()))
    else:
        logger.info(entry.to_text())


def setup_logging(config) -> None:
    """
    Configure logging for a listener or worker process.

    Worker processes call this again on start, since a spawned interpreter
    inherits no logging configuration.
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("gatewayserver").setLevel(level)

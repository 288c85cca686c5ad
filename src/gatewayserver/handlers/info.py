"""
=============================================================================
DIAGNOSTIC HANDLER
=============================================================================

A built-in handler that answers with a plain-text page describing the
worker that served the request. Point a web-server location at the
function name ``gatewayserver.handlers.info`` to check that requests reach
the gateway and arrive with the expected CGI environment:

    HTTP/1.1 200 OK
    Content-Type: text/plain
    Content-Length: 312
    Connection: close

    gatewayserver 1.0.0 on Python 3.12.1
    worker pid:     48213
    request no:     17
    uptime:         42.1s

    REQUEST_METHOD=GET
    QUERY_STRING=verbose=1
    ...

=============================================================================
"""

import os
import platform
import time
from typing import Any, Dict, Optional

from ..protocol.constants import SYS_REQUEST_NO


_started_at = time.time()


def render(cgi: Dict[str, str], system: Dict[str, Any]) -> str:
    """Render the diagnostic text body."""
    from .. import __version__

    lines = [
        f"gatewayserver {__version__} on Python {platform.python_version()}",
        f"worker pid:     {os.getpid()}",
        f"request no:     {system.get(SYS_REQUEST_NO, '-')}",
        f"uptime:         {time.time() - _started_at:.1f}s",
        "",
    ]
    lines.extend(f"{name}={value}" for name, value in sorted(cgi.items()))
    return "\n".join(lines) + "\n"


def handler(cgi: Dict[str, str], payload: Optional[bytes], system: Dict[str, Any]) -> bytes:
    body = render(cgi, system).encode("utf-8")
    head = (
        "HTTP/1.1 200 OK\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return head.encode("ascii") + body

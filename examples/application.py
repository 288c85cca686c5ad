"""
=============================================================================
EXAMPLE: DEFAULT APPLICATION
=============================================================================

The module the gateway falls back to when a request names no function:

    python -m gatewayserver 7041 examples/application.py

Every handler has the same shape:

    handler(cgi, payload, system) -> bytes | str | None

    cgi      CGI environment of the request (REQUEST_METHOD, QUERY_STRING,
             HTTP_* headers ...)
    payload  request body, or None
    system   system variables, plus "connection" and "cancellation"

The return value is the complete HTTP response the web server relays to
the client.

=============================================================================
"""

import json
from urllib.parse import parse_qs


def _response(status: str, content_type: str, body: bytes) -> bytes:
    head = (
        f"HTTP/1.1 {status}\r\n"
        f"Content-Type: {content_type}\r\n"
        f"Content-Length: {len(body)}\r\n"
        "\r\n"
    )
    return head.encode("ascii") + body


def handler(cgi, payload, system):
    """Echo the request back as JSON."""
    query = {
        name: values[0] if len(values) == 1 else values
        for name, values in parse_qs(cgi.get("QUERY_STRING", "")).items()
    }
    body = json.dumps({
        "method": cgi.get("REQUEST_METHOD", ""),
        "path": cgi.get("SCRIPT_NAME", "") + cgi.get("PATH_INFO", ""),
        "query": query,
        "request_no": system.get("no"),
        "body_length": len(payload) if payload else 0,
    }, indent=2).encode("utf-8")

    return _response("200 OK", "application/json", body)


def hello(cgi, payload, system):
    """Reached with the function name "examples/application.py:hello"."""
    name = parse_qs(cgi.get("QUERY_STRING", "")).get("name", ["world"])[0]
    return _response("200 OK", "text/plain; charset=utf-8", f"Hello, {name}!\n".encode("utf-8"))

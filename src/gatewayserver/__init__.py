"""
=============================================================================
GATEWAYSERVER - Binary Gateway Between a Web Server and Python Handlers
=============================================================================

This package accepts connections from a native web-server module, speaks
its length-prefixed binary protocol and runs each request through a
Python handler function.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        GATEWAY OVERVIEW                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   web server ──TCP──► GatewayServer (listener)                      │
    │                            │                                         │
    │                            │ one worker per connection              │
    │                            ▼                                         │
    │                      ConnectionWorker                                │
    │                            │                                         │
    │          decode ─► ack ─► handler(cgi, payload, sys) ─► response    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    gatewayserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m gatewayserver)
    ├── server.py            # GatewayServer listener + WorkerTable
    ├── config.py            # GatewayConfig dataclass
    ├── access_log.py        # Per-request access log
    ├── protocol/            # Wire format
    │   ├── constants.py     # Sort codes, offsets, limits
    │   ├── codec.py         # Sizes, tags, items, chunks
    │   ├── request.py       # Request envelope decoding (and building)
    │   └── response.py      # Identification, ack and response frames
    ├── handlers/            # Handler loading and invocation
    │   ├── registry.py      # Name → callable, cached per worker
    │   ├── dispatch.py      # Direct and async handler calls
    │   └── info.py          # Built-in diagnostic handler
    └── core/                # Connections and workers
        ├── socket_server.py # Listening socket and selector loop
        ├── connection.py    # Owned client connection
        ├── cancellation.py  # Cooperative stop token
        ├── worker.py        # Per-connection worker
        └── launcher.py      # Process / thread workers

=============================================================================
QUICK START
=============================================================================

    # application.py
    def handler(cgi, payload, system):
        return b"HTTP/1.1 200 OK\\r\\nContent-Type: text/plain\\r\\n\\r\\nHello"

    from gatewayserver import GatewayServer, GatewayConfig

    server = GatewayServer(GatewayConfig(port=7041, app="application.py"))
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .server import GatewayServer, WorkerTable
from .config import GatewayConfig

__all__ = ["GatewayServer", "WorkerTable", "GatewayConfig", "__version__"]

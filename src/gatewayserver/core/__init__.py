"""
=============================================================================
CORE GATEWAY COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Listening socket and the listener's selector loop                │
    │  • Graceful shutdown via signals (SIGINT, SIGTERM)                  │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ first bytes on a new connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                           LAUNCHER                                   │
    │  • Starts one isolated worker per connection (process or thread)   │
    │  • Moves socket ownership into the worker                          │
    │  • Returns a WorkerHandle with the control channel                 │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                      CONNECTION WORKER                               │
    │  • Handshake, then decode → ack → handler → response per request   │
    │  • CREATED → AWAITING_FIRST_BYTE → ACTIVE → DRAINING → TERMINATED  │
    │  • Cooperative stop through a CancellationToken                    │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                     GATEWAY CONNECTION                               │
    │  • Read events, serialized sends, orderly close                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import GatewayConnection, ConnectionState
from .cancellation import CancellationToken
from .worker import ConnectionWorker, WorkerState, MSG_STOP, MSG_STOPPING
from .launcher import (
    WorkerHandle, ProcessLauncher, ThreadLauncher, create_launcher,
)

__all__ = [
    "SocketServer",
    "GatewayConnection",
    "ConnectionState",
    "CancellationToken",
    "ConnectionWorker",
    "WorkerState",
    "MSG_STOP",
    "MSG_STOPPING",
    "WorkerHandle",
    "ProcessLauncher",
    "ThreadLauncher",
    "create_launcher",
]

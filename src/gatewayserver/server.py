"""
=============================================================================
GATEWAY LISTENER
=============================================================================

The master process: accepts connections from the web-server module, starts
one isolated worker per connection and keeps track of which workers are
alive.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        GATEWAY ARCHITECTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │                      ┌──────────────────┐                           │
    │                      │  GatewayServer   │   listener process        │
    │                      │  (WorkerTable)   │                           │
    │                      └────────┬─────────┘                           │
    │                               │                                      │
    │          ┌────────────────────┼────────────────────┐                │
    │          │                    │                    │                │
    │          ▼                    ▼                    ▼                │
    │   ┌─────────────┐      ┌─────────────┐      ┌─────────────┐        │
    │   │  Worker A   │      │  Worker B   │      │  Worker C   │        │
    │   │ connection 1│      │ connection 2│      │ connection 3│        │
    │   └─────────────┘      └─────────────┘      └─────────────┘        │
    │    own process,         own process,         own process,          │
    │    own handlers         own handlers         own handlers          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
CONNECTION LIFECYCLE (LISTENER SIDE)
=============================================================================

    1. ACCEPT
       └── SocketServer accepts; the socket is parked as "pending"
    2. FIRST DATA
       └── first readable event: read the opening burst, stop watching
    3. SPAWN
       └── launcher starts a worker, socket ownership moves with it
    4. TRACK
       └── WorkerTable[ident] = handle; watch the handle's control channel
    5. RETIRE
       └── "stopping" (or a dead channel) removes the entry

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    SIGINT / SIGTERM
         │
         ▼
    stop accepting ──► "stop" to every worker, removing each entry as the
                       message goes out
         │
         ▼
    wait grace_period (bounded, no per-worker confirmation)
         │
         ▼
    close channels, return from run()

=============================================================================
"""

import logging
import socket
import time
from typing import Any, Dict, Iterator, List, Optional

from .access_log import setup_logging
from .config import GatewayConfig
from .core import SocketServer, WorkerHandle, MSG_STOPPING, create_launcher


logger = logging.getLogger(__name__)


class WorkerTable:
    """
    Active workers, keyed by identity.

    Only the listener's control loop mutates the table.
    """

    def __init__(self):
        self._workers: Dict[int, WorkerHandle] = {}

    def add(self, handle: WorkerHandle) -> None:
        self._workers[handle.ident] = handle

    def remove(self, ident: int) -> Optional[WorkerHandle]:
        return self._workers.pop(ident, None)

    def get(self, ident: int) -> Optional[WorkerHandle]:
        return self._workers.get(ident)

    def handles(self) -> List[WorkerHandle]:
        return list(self._workers.values())

    def idents(self) -> List[int]:
        return list(self._workers)

    def __len__(self) -> int:
        return len(self._workers)

    def __contains__(self, ident: int) -> bool:
        return ident in self._workers

    def __iter__(self) -> Iterator[WorkerHandle]:
        return iter(self.handles())


class GatewayServer:
    """
    The gateway listener.

    =========================================================================
    USAGE
    =========================================================================

        server = GatewayServer(GatewayConfig(port=7041, app="application.py"))
        server.run()  # Blocks until SIGINT/SIGTERM or shutdown()

    A custom launcher can be passed for embedding and tests; by default
    config.worker_mode picks between processes and threads.

    =========================================================================
    """

    def __init__(self, config: Optional[GatewayConfig] = None, launcher: Any = None):
        self.config = config or GatewayConfig()
        self.config.validate()

        self._socket_server = SocketServer(self.config)
        self._launcher = launcher or create_launcher(self.config)

        self.workers = WorkerTable()
        self._pending: Dict[int, socket.socket] = {}

        self._spawned = 0
        self._finished = 0
        self._running = False

    @property
    def address(self):
        return self._socket_server.address

    @property
    def stats(self) -> dict:
        return {
            "active": len(self.workers),
            "workers": self.workers.idents(),
            "pending": len(self._pending),
            "spawned": self._spawned,
            "finished": self._finished,
        }

    # =========================================================================
    # SERVER LIFECYCLE
    # =========================================================================

    def run(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Start the listener (blocking).

        Args:
            host: Override config host.
            port: Override config port.

        Raises:
            OSError: If the listening socket cannot be bound.
        """
        if host:
            self.config.host = host
        if port is not None:
            self.config.port = port

        setup_logging(self.config)
        logger.info(
            f"Starting gateway on {self.config.host}:{self.config.port} "
            f"(workers: {self.config.worker_mode}, default app: {self.config.app})"
        )

        self._running = True
        try:
            self._socket_server.start(self._on_accept)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._running = False
            self._shutdown()

    def shutdown(self):
        """Request a graceful shutdown; run() returns once it completes."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    def _shutdown(self):
        for sock in self._pending.values():
            sock.close()
        self._pending.clear()

        stopped = self.stop_workers()
        if stopped and self.config.grace_period:
            time.sleep(self.config.grace_period)

        logger.info(
            f"Gateway stopped ({self._spawned} workers started, "
            f"{self._finished} finished)"
        )

    def stop_workers(self) -> List[WorkerHandle]:
        """
        Send "stop" to every registered worker and empty the table.

        Each worker is removed as its message goes out, whether or not it
        is still reachable. Returns the handles that were stopped.
        """
        stopped = []
        for handle in self.workers.handles():
            self._socket_server.unwatch(handle)
            if handle.stop():
                logger.info(f"Sent stop to worker {handle.ident}")
            self.workers.remove(handle.ident)
            handle.close()
            stopped.append(handle)
        return stopped

    # =========================================================================
    # EVENT CALLBACKS (listener loop thread only)
    # =========================================================================

    def _on_accept(self, client_socket: socket.socket, address: Any):
        client_socket.setblocking(False)
        self._pending[client_socket.fileno()] = client_socket
        logger.info(f"Accepted connection from {address[0]}:{address[1]}")
        self._socket_server.watch(
            client_socket, lambda: self._on_first_data(client_socket, address)
        )

    def _on_first_data(self, client_socket: socket.socket, address: Any):
        self._socket_server.unwatch(client_socket)
        self._pending.pop(client_socket.fileno(), None)

        try:
            first_burst = client_socket.recv(self.config.buffer_size)
        except BlockingIOError:
            # spurious wakeup, keep waiting
            self._pending[client_socket.fileno()] = client_socket
            self._socket_server.watch(
                client_socket, lambda: self._on_first_data(client_socket, address)
            )
            return
        except OSError as e:
            logger.warning(f"Read error from {address[0]}:{address[1]}: {e}")
            client_socket.close()
            return

        if not first_burst:
            logger.info(f"Client {address[0]}:{address[1]} closed before sending data")
            client_socket.close()
            return

        client_socket.setblocking(True)
        handle = self._launcher.launch(client_socket, address, first_burst)
        self.workers.add(handle)
        self._spawned += 1
        self._socket_server.watch(handle, lambda: self._on_worker_message(handle))

    def _on_worker_message(self, handle: WorkerHandle):
        message = handle.receive()

        if message == MSG_STOPPING or message is None:
            self._retire(handle)
        else:
            logger.debug(f"Worker {handle.ident}: unexpected message {message!r}")

    def _retire(self, handle: WorkerHandle):
        self._socket_server.unwatch(handle)
        if self.workers.remove(handle.ident) is not None:
            self._finished += 1
            logger.info(
                f"Worker {handle.ident} finished ({len(self.workers)} active)"
            )
        handle.close()

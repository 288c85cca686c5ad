"""
=============================================================================
LISTENING SOCKET AND EVENT LOOP
=============================================================================

The listener's single control loop: one selector watching the listening
socket, connections that have not yet sent their first bytes, and the
control channels of running workers.

    ┌───────────────────────────────────────────────────────────────────┐
    │                        SocketServer loop                          │
    ├───────────────────────────────────────────────────────────────────┤
    │                                                                   │
    │   while running:                                                  │
    │       select(timeout)                                             │
    │         ├── listening socket readable  ──► on_accept(sock, addr)  │
    │         ├── watched socket readable    ──► its callback()         │
    │         └── worker channel readable    ──► its callback()         │
    │                                                                   │
    │   (timeout keeps the loop checking the running flag, so a         │
    │    shutdown requested from a signal or another thread is seen)    │
    │                                                                   │
    └───────────────────────────────────────────────────────────────────┘

All callbacks run on the loop's thread, so state they touch needs no
locking.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR   rebind immediately after a restart
TCP_NODELAY    frames go out as soon as they are written
non-blocking   the selector decides when accept()/recv() will not block

=============================================================================
SIGNALS
=============================================================================

SIGINT (Ctrl+C) and SIGTERM start a graceful shutdown. Handlers are only
installed when the loop runs on the main thread; the original handlers are
restored on exit.

=============================================================================
"""

import selectors
import socket
import signal
import logging
import threading
from typing import Any, Callable, Optional, Tuple

from ..config import GatewayConfig


logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.5


class SocketServer:
    """
    Listening socket plus selector loop.

    Usage:
        def on_accept(sock, address):
            server.watch(sock, lambda: on_readable(sock))

        server = SocketServer(config)
        server.start(on_accept)  # Blocks until shutdown()
    """

    def __init__(self, config: GatewayConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._selector: Optional[selectors.BaseSelector] = None
        self._running = False
        self._ready = threading.Event()
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """Bound address; reports the real port when configured with 0."""
        if self._socket is not None:
            return self._socket.getsockname()[:2]
        return (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.setblocking(False)
        return sock

    # ─────────────────────────────────────────────────────────────────────
    # SIGNALS
    # ─────────────────────────────────────────────────────────────────────

    def _setup_signals(self):
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            signal_name = signal.Signals(signum).name
            logger.info(f"Received {signal_name}, shutting down gracefully...")
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # ─────────────────────────────────────────────────────────────────────
    # WATCHED OBJECTS
    # ─────────────────────────────────────────────────────────────────────

    def watch(self, fileobj: Any, callback: Callable[[], None]) -> None:
        """Call callback (on the loop thread) whenever fileobj is readable."""
        self._selector.register(fileobj, selectors.EVENT_READ, callback)

    def unwatch(self, fileobj: Any) -> None:
        if self._selector is None:
            return
        try:
            self._selector.unregister(fileobj)
        except (KeyError, ValueError, OSError):
            pass  # never watched, or already closed

    # ─────────────────────────────────────────────────────────────────────
    # MAIN LOOP
    # ─────────────────────────────────────────────────────────────────────

    def start(self, on_accept: Callable[[socket.socket, Any], None]):
        """
        Bind, listen and run the loop until shutdown() is called.

        Args:
            on_accept: Called with (client_socket, address) for every
                       accepted connection.
        """
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)

        self._selector = selectors.DefaultSelector()
        self._selector.register(self._socket, selectors.EVENT_READ, lambda: self._accept(on_accept))

        self._running = True
        self._shutdown_event.clear()
        self._setup_signals()

        host, port = self.address
        logger.info(f"Gateway listening on {host}:{port}")
        self._ready.set()

        try:
            self._loop()
        finally:
            self._cleanup()

    def _loop(self):
        while self._running:
            try:
                events = self._selector.select(timeout=POLL_INTERVAL)
            except InterruptedError:
                continue

            for key, _ in events:
                # an earlier callback in this batch may have unwatched it
                if self._selector.get_map().get(key.fd) is not key:
                    continue
                try:
                    key.data()
                except Exception as e:
                    logger.exception(f"Event callback failed: {e}")

    def _accept(self, on_accept: Callable[[socket.socket, Any], None]):
        try:
            client_socket, client_address = self._socket.accept()
        except (BlockingIOError, InterruptedError):
            return
        except OSError as e:
            if self._running:
                logger.error(f"Accept error: {e}")
            return

        on_accept(client_socket, client_address)

    def shutdown(self):
        """Stop the loop. Safe to call from signal handlers and other threads."""
        if self._running:
            logger.info("Shutting down listener...")
        self._running = False
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()

        if self._selector is not None:
            self._selector.close()
            self._selector = None

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self._ready.clear()
        logger.info("Listener socket closed")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the socket is listening (for tests and embedding)."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        return self._shutdown_event.wait(timeout)

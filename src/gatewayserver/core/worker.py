"""
=============================================================================
CONNECTION WORKER
=============================================================================

A worker owns one client connection end-to-end: it answers the opening
handshake, decodes every request on the connection, dispatches it to a
handler and writes the acknowledgement and response frames back.

=============================================================================
WORKER STATE MACHINE
=============================================================================

    CREATED ──► AWAITING_FIRST_BYTE ──► ACTIVE ──► DRAINING ──► TERMINATED
                        │                             ▲
                        └─────────────────────────────┘
                          (no first burst / failure)

    CREATED              constructed, connection not yet taken over
    AWAITING_FIRST_BYTE  owns the socket, waiting for the opening burst
    ACTIVE               identification sent, serving requests
    DRAINING             peer closed, stop message, framing or transport
                         error: cancel handlers, tell the listener
    TERMINATED           connection closed, worker done

Every path out of ACTIVE goes through DRAINING, so the listener hears
about every worker that ends.

=============================================================================
THREADS INSIDE ONE WORKER
=============================================================================

    ┌──────────────┐  (kind, bytes)   ┌──────────────────────────────────┐
    │ reader       │ ───────────────► │ serving thread (run)             │
    │ recv() loop  │                  │                                  │
    └──────────────┘                  │  decode ─► ack ─► handler ─►     │
    ┌──────────────┐  stop            │  response                        │
    │ control      │ ───────────────► │                                  │
    │ channel loop │   (+ cancel)     │  one request at a time, in       │
    └──────────────┘                  │  arrival order                   │
                                      └──────────────────────────────────┘

The reader keeps draining the socket into a queue while a handler runs, so
a slow or suspended handler never stalls the transport. Read boundaries
carry no meaning: a RequestAssembler buffers the bytes and cuts them into
envelopes by their declared total length. Requests are still
served strictly one after another, so each request's ack and response
pair reaches the wire in order. Suspending handlers run on an event loop
private to the worker.

=============================================================================
"""

import asyncio
import logging
import platform
import queue
import socket
import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

from ..access_log import RequestLog, log_request
from ..config import GatewayConfig
from ..handlers import HandlerRegistry, HandlerLoadError, ImportResolver, invoke
from ..protocol import (
    FramingError, RequestAssembler, RequestFrame, ResponseEncoder, ERROR_RESPONSE,
    decode_request,
)
from ..protocol.constants import SYS_CONNECTION, SYS_CANCELLATION
from .cancellation import CancellationToken
from .connection import GatewayConnection


logger = logging.getLogger(__name__)


# Control messages between listener and worker
MSG_STOP = "stop"
MSG_STOPPING = "stopping"

# Event kinds on the worker's queue
_DATA = "data"
_CLOSED = "closed"
_STOP = "stop"


class WorkerState(Enum):
    """Worker lifecycle states."""
    CREATED = "created"
    AWAITING_FIRST_BYTE = "awaiting_first_byte"
    ACTIVE = "active"
    DRAINING = "draining"
    TERMINATED = "terminated"


class ConnectionWorker:
    """
    Serves one gateway connection.

    Args:
        sock: Client socket; the worker takes sole ownership.
        address: Peer address, for logging.
        first_burst: Opening bytes the listener already read, or None to
                     read them here.
        channel: Worker end of the control channel to the listener
                 (a multiprocessing Connection), or None.
        config: Gateway configuration.
        ident: Worker identity used in logs and by the listener.
        registry: Handler registry (a fresh one per worker by default).
        exit_hook: Called grace_period seconds after a stop message; a
                   worker process passes a hard exit here.
    """

    def __init__(
        self,
        sock: socket.socket,
        address: Any,
        first_burst: Optional[bytes],
        channel: Any,
        config: GatewayConfig,
        ident: int = 0,
        registry: Optional[HandlerRegistry] = None,
        exit_hook: Optional[Callable[[], None]] = None,
    ):
        self.config = config
        self.ident = ident
        self.state = WorkerState.CREATED

        self._sock: Optional[socket.socket] = sock
        self._address = address
        self._first_burst = first_burst
        self._channel = channel
        self._exit_hook = exit_hook

        if registry is None:
            registry = HandlerRegistry(ImportResolver(), default=config.app)
        self.registry = registry
        self.cancellation = CancellationToken()
        self.connection: Optional[GatewayConnection] = None

        self._encoder = ResponseEncoder(config.output_buffer_size)
        self._assembler = RequestAssembler(config.max_request_size)
        self._events: "queue.Queue[tuple]" = queue.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stopping = threading.Event()
        self._finished = threading.Event()

        self.requests_served = 0

    # ─────────────────────────────────────────────────────────────────────
    # LIFECYCLE
    # ─────────────────────────────────────────────────────────────────────

    def run(self) -> None:
        """Serve the connection until it closes or the worker is stopped."""
        self.state = WorkerState.AWAITING_FIRST_BYTE
        self.connection = GatewayConnection(
            socket=self._sock,
            address=self._address,
            buffer_size=self.config.buffer_size,
        )
        self._sock = None
        logger.info(
            f"Worker {self.ident} created for client {self.connection.remote_address}"
        )

        self._loop = asyncio.new_event_loop()
        try:
            if self._activate():
                self._start_threads()
                self._serve()
        except Exception as e:
            logger.exception(f"Worker {self.ident} failed: {e}")
        finally:
            self._drain()

    def stop(self) -> None:
        """
        Handle a stop message from the listener.

        Cancels the token handlers see, wakes the serving loop and arms
        the exit hook. An in-flight handler is not interrupted.
        """
        if self._stopping.is_set():
            return
        self._stopping.set()
        logger.info(f"Worker {self.ident} received stop")

        self.cancellation.cancel()
        self._events.put((_STOP, None))

        if self._exit_hook is not None:
            timer = threading.Timer(self.config.grace_period, self._exit_hook)
            timer.daemon = True
            timer.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait until the worker has terminated."""
        return self._finished.wait(timeout)

    def _activate(self) -> bool:
        burst = self._first_burst
        self._first_burst = None
        if burst is None:
            burst = self.connection.read_event()
        if not burst:
            logger.info(f"Worker {self.ident}: connection closed before handshake")
            return False

        logger.debug(f"Worker {self.ident} handshake of {len(burst)} bytes")
        self.state = WorkerState.ACTIVE

        banner = f"{self.config.server_name} Python {platform.python_version()}"
        return self.connection.send(self._encoder.identification(banner))

    def _start_threads(self) -> None:
        reader = threading.Thread(
            target=self._read_loop, name=f"worker-{self.ident}-reader", daemon=True
        )
        reader.start()

        if self._channel is not None:
            control = threading.Thread(
                target=self._control_loop, name=f"worker-{self.ident}-control", daemon=True
            )
            control.start()

    def _drain(self) -> None:
        self.state = WorkerState.DRAINING
        self.cancellation.cancel()
        self._report(MSG_STOPPING)

        if self.config.grace_period:
            time.sleep(self.config.grace_period)

        if self.connection is not None:
            self.connection.close()
        elif self._sock is not None:
            self._sock.close()

        if self._loop is not None:
            self._loop.close()

        if self._channel is not None:
            try:
                self._channel.close()
            except OSError:
                pass

        self.state = WorkerState.TERMINATED
        logger.info(
            f"Worker {self.ident} terminated after {self.requests_served} requests"
        )
        # wait() returning implies TERMINATED
        self._finished.set()

    def _report(self, message: str) -> None:
        if self._channel is None:
            return
        try:
            self._channel.send(message)
        except (OSError, EOFError, ValueError) as e:
            logger.debug(f"Worker {self.ident}: listener unreachable ({e})")

    # ─────────────────────────────────────────────────────────────────────
    # BACKGROUND THREADS
    # ─────────────────────────────────────────────────────────────────────

    def _read_loop(self) -> None:
        while True:
            data = self.connection.read_event()
            if data is None:
                self._events.put((_CLOSED, None))
                return
            self._events.put((_DATA, data))

    def _control_loop(self) -> None:
        while not self._finished.is_set():
            try:
                if not self._channel.poll(0.2):
                    continue
                message = self._channel.recv()
            except (EOFError, OSError, ValueError):
                # closed by the listener, or by _drain on this side
                logger.debug(f"Worker {self.ident}: control channel closed")
                return

            if message == MSG_STOP:
                self.stop()
            else:
                logger.debug(f"Worker {self.ident}: ignoring control message {message!r}")

    # ─────────────────────────────────────────────────────────────────────
    # REQUEST PROCESSING
    # ─────────────────────────────────────────────────────────────────────

    def _serve(self) -> None:
        while not self._stopping.is_set():
            kind, data = self._events.get()

            if kind == _CLOSED:
                logger.info(f"Worker {self.ident}: connection closed by peer")
                return
            if kind == _STOP:
                return

            self._assembler.feed(data)
            if not self._serve_buffered():
                return

    def _serve_buffered(self) -> bool:
        """Handle every complete request in the buffer, in order."""
        while not self._stopping.is_set():
            try:
                raw = self._assembler.next_frame()
            except FramingError as e:
                logger.warning(
                    f"Worker {self.ident}: framing error at offset {e.offset}: {e}; "
                    f"closing connection"
                )
                return False

            if raw is None:
                return True
            if not self.handle_request(raw):
                return False
        return True

    def handle_request(self, data: bytes) -> bool:
        """
        Process one complete request envelope.

        Returns:
            True to keep serving, False when the connection must close
            (framing error or failed write).
        """
        started = time.time()
        try:
            request = decode_request(data)
        except FramingError as e:
            logger.warning(
                f"Worker {self.ident}: framing error at offset {e.offset}: {e}; "
                f"closing connection"
            )
            return False

        if not self.connection.send(self._encoder.acknowledgement(request.request_no)):
            return False

        body = self._dispatch(request)
        self.requests_served += 1
        log_request(
            RequestLog.create(
                worker=self.ident,
                request_no=request.request_no,
                function=request.function or self.registry.default,
                body=body,
                duration_ms=(time.time() - started) * 1000,
            ),
            self.config.log_format,
        )
        return self.connection.send(self._encoder.response(body))

    def _dispatch(self, request: RequestFrame) -> bytes:
        try:
            handler = self.registry.resolve(request.function)
        except HandlerLoadError as e:
            logger.error(f"Worker {self.ident}: {e}", exc_info=e.__cause__)
            return ERROR_RESPONSE

        system = dict(request.system)
        system[SYS_CONNECTION] = self.connection
        system[SYS_CANCELLATION] = self.cancellation

        try:
            return invoke(handler, request.cgi, request.payload, system, self._loop)
        except Exception as e:
            logger.exception(
                f"Worker {self.ident}: handler {request.function!r} failed: {e}"
            )
            return ERROR_RESPONSE

"""
=============================================================================
GATEWAY CONNECTION
=============================================================================

Wraps the client socket owned by one worker.

=============================================================================
READ EVENTS
=============================================================================

A read event is whatever one recv() returned. TCP keeps no message
boundaries, so a large request arrives over several read events and two
requests sent back to back may arrive in one. The worker reassembles
envelopes from the read events by their declared length:

    web-server module                          worker
        │                                        │
        │  request #1 (part) ───────────────────►│ read_event() → bytes
        │  request #1 (rest) + request #2 ──────►│ read_event() → bytes
        │◄──────────────────────  ack + response │ (request #1)
        │◄──────────────────────  ack + response │ (request #2)
        │  FIN         ─────────────────────────►│ read_event() → None
        │                                        │

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    OPEN ──────► CLOSING ──────► CLOSED

A connection is OPEN from the moment its worker takes ownership until
close() runs. Transport failures never raise out of this class: a failed
read looks like a closed peer (None) and a failed send returns False.

=============================================================================
"""

import socket
import threading
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states."""
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class GatewayConnection:
    """
    A client connection owned by exactly one worker.

    Attributes:
        socket: The client socket.
        address: Peer (ip, port) tuple.
        id: Short connection identifier (for logging).
        state: Current connection state.
        created_at: Timestamp when the worker took ownership.
        last_activity: Timestamp of last read or write.
        reads: Number of read events delivered.
        bytes_sent: Total bytes written.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.OPEN
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    reads: int = 0
    bytes_sent: int = 0

    buffer_size: int = 65536

    _send_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        try:
            self.socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except OSError:
            pass  # not a TCP socket (socketpair in tests)

    # ─────────────────────────────────────────────────────────────────────
    # PROPERTIES
    # ─────────────────────────────────────────────────────────────────────

    @property
    def remote_address(self) -> str:
        """Peer address as "ip:port"."""
        if isinstance(self.address, tuple) and len(self.address) >= 2:
            return f"{self.address[0]}:{self.address[1]}"
        return str(self.address or "local")

    @property
    def is_open(self) -> bool:
        return self.state == ConnectionState.OPEN

    @property
    def age(self) -> float:
        """Connection age in seconds."""
        return time.time() - self.created_at

    # ─────────────────────────────────────────────────────────────────────
    # READING
    # ─────────────────────────────────────────────────────────────────────

    def read_event(self) -> Optional[bytes]:
        """
        Wait for the next read event.

        Returns:
            The bytes of one recv(), or None once the peer has closed the
            connection or the transport failed.
        """
        try:
            data = self.socket.recv(self.buffer_size)
        except OSError as e:
            if self.is_open:
                logger.warning(f"[{self.id}] Read failed: {e}")
            return None

        if not data:
            return None

        self.reads += 1
        self.last_activity = time.time()
        return data

    # ─────────────────────────────────────────────────────────────────────
    # WRITING
    # ─────────────────────────────────────────────────────────────────────

    def send(self, data: bytes) -> bool:
        """
        Send data to the peer.

        Frames from the worker and writes a handler makes through the
        connection handle are serialized so they never interleave.

        Returns:
            True if all bytes were sent, False if the connection is lost.
        """
        if not self.is_open:
            return False

        with self._send_lock:
            try:
                self.socket.sendall(data)
            except OSError as e:
                logger.warning(f"[{self.id}] Send failed: {e}")
                return False

        self.bytes_sent += len(data)
        self.last_activity = time.time()
        return True

    # ─────────────────────────────────────────────────────────────────────
    # CLOSING
    # ─────────────────────────────────────────────────────────────────────

    def close(self):
        """
        Close the connection.

        shutdown(SHUT_RDWR) first, so a thread blocked in read_event()
        wakes up with an end-of-stream, then release the descriptor.
        """
        if self.state != ConnectionState.OPEN:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # peer already gone

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.reads} reads")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

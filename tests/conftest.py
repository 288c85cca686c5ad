"""
pytest configuration and fixtures.
"""

import socket
import struct
import threading
from typing import Generator, Optional, Tuple

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from gatewayserver import GatewayConfig
from gatewayserver.protocol import RequestBuilder
from gatewayserver.protocol.constants import TERMINATOR_MARK


def recv_exact(sock: socket.socket, count: int) -> bytes:
    """Read exactly count bytes or fail the test on early close."""
    data = b""
    while len(data) < count:
        chunk = sock.recv(count - len(data))
        if not chunk:
            raise AssertionError(f"Connection closed after {len(data)} of {count} bytes")
        data += chunk
    return data


class GatewayClient:
    """
    The web-server module's side of one gateway connection.

    Reads frames with exact lengths, so it never depends on how the
    gateway's writes were split into TCP segments.
    """

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self.sock.settimeout(5.0)

    def handshake(self, data: bytes = b"\x00" * 8) -> Tuple[int, bytes]:
        """Send the opening burst and return (tag, banner) of the reply."""
        self.sock.sendall(data)
        return self.read_identification()

    def read_identification(self) -> Tuple[int, bytes]:
        length, tag = struct.unpack("<IB", recv_exact(self.sock, 5))
        return tag, recv_exact(self.sock, length)

    def read_ack(self) -> Tuple[int, int, int, int]:
        """Returns (len1, cmd1, len2, cmd2) of the two control heads."""
        return struct.unpack("<IBIB", recv_exact(self.sock, 10))

    def read_response(self) -> bytes:
        length = struct.unpack("<I", recv_exact(self.sock, 4))[0]
        body = recv_exact(self.sock, length)
        assert recv_exact(self.sock, 4) == TERMINATOR_MARK
        return body

    def request(self, raw: bytes) -> Tuple[Tuple[int, int, int, int], bytes]:
        """Send one request and read its ack and response."""
        self.sock.sendall(raw)
        return self.read_ack(), self.read_response()

    def at_eof(self) -> bool:
        """True once the gateway has closed its end."""
        try:
            return self.sock.recv(1) == b""
        except OSError:
            return True

    def close(self):
        self.sock.close()


# ─────────────────────────────────────────────────────────────────────────
# FIXTURES
# ─────────────────────────────────────────────────────────────────────────

@pytest.fixture
def builder() -> RequestBuilder:
    """A request builder pre-set with a typical GET."""
    return (RequestBuilder()
        .cgi("REQUEST_METHOD", "GET")
        .cgi("SCRIPT_NAME", "/api")
        .cgi("QUERY_STRING", "page=1"))


@pytest.fixture
def config() -> GatewayConfig:
    """Thread-mode configuration with a short grace period."""
    return GatewayConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        worker_mode="thread",
        grace_period=0.05,
        log_level="WARNING",
    )


@pytest.fixture
def socket_pair() -> Generator[Tuple[socket.socket, socket.socket], None, None]:
    """(gateway side, client side) of a connected socket pair."""
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    for sock in (server_side, client_side):
        try:
            sock.close()
        except OSError:
            pass


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def handler_module(tmp_path: Path) -> Path:
    """A handler file with a sync, an async and a failing handler."""
    path = tmp_path / "testapp.py"
    path.write_text(
        "import asyncio\n"
        "\n"
        "def handler(cgi, payload, system):\n"
        "    body = 'method=' + cgi.get('REQUEST_METHOD', '')\n"
        "    return 'HTTP/1.1 200 OK\\r\\n\\r\\n' + body\n"
        "\n"
        "async def slow(cgi, payload, system):\n"
        "    await asyncio.sleep(0.01)\n"
        "    return b'HTTP/1.1 200 OK\\r\\n\\r\\nslow'\n"
        "\n"
        "def echo(cgi, payload, system):\n"
        "    return b'HTTP/1.1 200 OK\\r\\n\\r\\n' + (payload or b'')\n"
        "\n"
        "def broken(cgi, payload, system):\n"
        "    raise RuntimeError('boom')\n"
    )
    return path


class ServerThread:
    """Runs a GatewayServer in a background thread."""

    def __init__(self, server):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")

    def connect(self) -> GatewayClient:
        return GatewayClient(socket.create_connection(("127.0.0.1", self.port), timeout=5.0))

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

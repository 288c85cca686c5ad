"""
=============================================================================
RESPONSE ENCODER
=============================================================================

Builds the frames the gateway writes back to the web-server module.

=============================================================================
FRAMES PER REQUEST
=============================================================================

    gateway                                          web-server module
       │                                                     │
       │  (once per connection, on first burst)              │
       │  IDENTIFICATION  tagged item, sort 0  ─────────────►│
       │                                                     │
       │  (per request, right after decoding)                │
       │  ACK  control head  len=0          cmd=0  ─────────►│ framing mode
       │  ACK  control head  len=request_no cmd=1  ─────────►│ in-flight no
       │                                                     │
       │        ... handler runs ...                         │
       │                                                     │
       │  RESPONSE  chunk  len=N  body(N)  ─────────────────►│
       │            FF FF FF FF            ─────────────────►│
       │                                                     │

=============================================================================
THE SCRATCH BUFFER
=============================================================================

One ResponseEncoder owns one bytearray that is reused for every frame it
encodes. Each encode starts at offset 0 and hands out a copy of exactly
buf[:offset], so bytes left over from an earlier, longer frame never reach
the wire. The encoder belongs to a single worker and is used from that
worker's serving thread only.

=============================================================================
"""

from .codec import (
    BytesLike,
    write_tagged_item, write_control_head, write_chunk, write_terminator,
)
from .constants import Sort, ACK_FRAMING, ACK_REQUEST_NO


ERROR_RESPONSE = (
    b"HTTP/1.1 400 Bad Request\r\n"
    b"Content-Type: text/plain\r\n"
    b"Connection: close\r\n"
    b"\r\n"
)
"""Fixed response sent when a handler cannot be loaded or fails."""


class ResponseEncoder:
    """
    Encoder for identification, acknowledgement and response frames.

    Usage:
        encoder = ResponseEncoder(size=2048)
        conn.send(encoder.acknowledgement(request.request_no))
        conn.send(encoder.response(body))
    """

    def __init__(self, size: int = 2048):
        self._buffer = bytearray(size)

    @property
    def capacity(self) -> int:
        """Current size of the scratch buffer (grows on demand)."""
        return len(self._buffer)

    def _take(self, offset: int) -> bytes:
        return bytes(self._buffer[:offset])

    def identification(self, banner: str) -> bytes:
        """Self-identification frame sent once when a connection opens."""
        offset = write_tagged_item(self._buffer, 0, banner.encode("utf-8"), Sort.DATA, 0)
        return self._take(offset)

    def acknowledgement(self, request_no: int) -> bytes:
        """
        The two control heads written before a handler runs.

        The first announces the chunked framing mode, the second echoes
        the request number so the peer can track the request in flight.
        """
        offset = write_control_head(self._buffer, 0, 0, ACK_FRAMING)
        offset = write_control_head(self._buffer, offset, request_no, ACK_REQUEST_NO)
        return self._take(offset)

    def response(self, body: BytesLike) -> bytes:
        """Chunk frame carrying body followed by the terminator."""
        offset = write_chunk(self._buffer, 0, body, len(body))
        offset = write_terminator(self._buffer, offset)
        return self._take(offset)

    def error_response(self) -> bytes:
        return self.response(ERROR_RESPONSE)

"""
=============================================================================
REQUEST ENVELOPE DECODER
=============================================================================

Cuts the connection byte stream into request envelopes (RequestAssembler)
and turns each envelope into a structured RequestFrame.

=============================================================================
ENVELOPE STRUCTURE
=============================================================================

A request is a two-level item list behind a fixed 15-byte header:

    ┌──────────────────────────────────────────────────────────────────┐
    │ HEADER  tlen(4) cmd(1) obufsize(4) enc(1) request_no(4) rsv(1)   │
    ├──────────────────────────────────────────────────────────────────┤
    │ OUTER ITEMS (at most 10, ended by a sort-9 item)                 │
    │                                                                  │
    │   [0] function name        "myapp.handlers:orders"               │
    │   [1] context              "default"                             │
    │   [2] HTTP item list ─────────────┐  (located, not copied)       │
    │   [3] parameters                  │                              │
    │   [9] terminator                  │                              │
    └───────────────────────────────────┼──────────────────────────────┘
                                        ▼
    ┌──────────────────────────────────────────────────────────────────┐
    │ HTTP ITEMS (at most 1000, ended by a sort-9 item)                │
    │                                                                  │
    │   sort 5  CGI variable     REQUEST_METHOD=POST                   │
    │   sort 5  CGI variable     QUERY_STRING=a=b&c=d                  │
    │   sort 6  payload          {"id": 7}                             │
    │   sort 8  system variable  no=<uint32>                           │
    │   sort 8  system variable  function=other.module                 │
    │   sort 9  terminator                                             │
    └──────────────────────────────────────────────────────────────────┘

=============================================================================
DECODING RULES
=============================================================================

1. CGI variables split on the FIRST "=" only: QUERY_STRING=a=b=c gives
   QUERY_STRING -> "a=b=c". Last write wins on duplicate names.
2. A later payload item replaces an earlier one.
3. System variable "no" carries a binary uint32 after "no=" and replaces
   the request number from the header.
4. System variable "function" replaces the function name from item 0.
5. Both lists must hit a terminator inside their bound (10 / 1000).
   Running out of items, or any length that points outside the buffer,
   fails the whole decode with FramingError. Nothing partial is returned.
6. tlen is the size of the whole envelope, header included. It is what
   delimits envelopes on the stream, not the boundaries of reads.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .codec import (
    BytesLike, FramingError,
    read_size, read_item_header, write_size, write_tagged_item,
)
from .constants import (
    Sort,
    HEADER_TOTAL_LENGTH, HEADER_COMMAND, HEADER_OUTPUT_BUFFER_SIZE,
    HEADER_ENCODING, HEADER_REQUEST_NO, HEADER_BYTES,
    ITEM_HEADER_BYTES, SIZE_BYTES, MAX_SIZE,
    MAX_OUTER_ITEMS, MAX_HTTP_ITEMS,
    ITEM_FUNCTION, ITEM_CONTEXT, ITEM_HTTP, ITEM_PARAMETERS,
    QUERY_STRING, SYS_REQUEST_NO, SYS_FUNCTION,
)


TEXT_ENCODING = "utf-8"


@dataclass
class RequestFrame:
    """
    One decoded request.

    Attributes:
        total_length: Length declared in the header.
        command: Command code from the header.
        output_buffer_size: Output buffer size the peer declared.
        encoding_flag: Non-zero when the client side is UTF-16.
        request_no: Request sequence number (header, or system "no").
        function: Handler name (item 0, or system "function").
        context: Context string (item 1).
        http_span: (offset, length) of the HTTP item list in the raw buffer.
        parameters: Parameter string (item 3).
        cgi: CGI environment variables.
        system: System variables.
        payload: Request body, None if the request carried none.
    """

    total_length: int = 0
    command: int = 0
    output_buffer_size: int = 0
    encoding_flag: int = 0
    request_no: int = 0
    function: str = ""
    context: str = ""
    http_span: Tuple[int, int] = (0, 0)
    parameters: str = ""
    cgi: Dict[str, str] = field(default_factory=dict)
    system: Dict[str, Any] = field(default_factory=dict)
    payload: Optional[bytes] = None

    @property
    def is_utf16(self) -> bool:
        return self.encoding_flag != 0

    @property
    def query_string(self) -> str:
        return self.cgi.get(QUERY_STRING, "")


def _text(data: BytesLike) -> str:
    return bytes(data).decode(TEXT_ENCODING, errors="replace")


def _item_payload(buf: BytesLike, offset: int, length: int) -> BytesLike:
    """Slice an item payload, refusing lengths that leave the buffer."""
    if offset + length > len(buf):
        raise FramingError(
            f"Item of {length} bytes at offset {offset} overruns "
            f"buffer of {len(buf)} bytes",
            offset,
        )
    return buf[offset:offset + length]


def _decode_header(buf: BytesLike, frame: RequestFrame) -> None:
    if len(buf) < HEADER_BYTES:
        raise FramingError(
            f"Request of {len(buf)} bytes is shorter than the "
            f"{HEADER_BYTES}-byte header",
            0,
        )
    frame.total_length = read_size(buf, HEADER_TOTAL_LENGTH)
    frame.command = buf[HEADER_COMMAND]
    frame.output_buffer_size = read_size(buf, HEADER_OUTPUT_BUFFER_SIZE)
    frame.encoding_flag = buf[HEADER_ENCODING]
    frame.request_no = read_size(buf, HEADER_REQUEST_NO)


def _decode_outer_items(buf: BytesLike, frame: RequestFrame) -> None:
    offset = HEADER_BYTES
    for index in range(MAX_OUTER_ITEMS):
        length, sort, _ = read_item_header(buf, offset)
        offset += ITEM_HEADER_BYTES
        if sort == Sort.TERMINATOR:
            return

        data = _item_payload(buf, offset, length)
        if index == ITEM_FUNCTION:
            frame.function = _text(data)
        elif index == ITEM_CONTEXT:
            frame.context = _text(data)
        elif index == ITEM_HTTP:
            frame.http_span = (offset, length)
        elif index == ITEM_PARAMETERS:
            frame.parameters = _text(data)
        offset += length

    raise FramingError(
        f"Outer item list not terminated within {MAX_OUTER_ITEMS} items",
        offset,
    )


def _decode_system_variable(data: BytesLike, frame: RequestFrame) -> None:
    raw = bytes(data)
    key, _, value = raw.partition(b"=")
    name = key.decode(TEXT_ENCODING, errors="replace")

    if name == SYS_REQUEST_NO:
        # "no=" is followed by the request number as a binary uint32
        request_no = read_size(raw, len(key) + 1)
        frame.request_no = request_no
        frame.system[name] = request_no
        return

    text = value.decode(TEXT_ENCODING, errors="replace")
    if name == SYS_FUNCTION:
        frame.function = text
    frame.system[name] = text


def _decode_http_items(buf: BytesLike, frame: RequestFrame) -> None:
    start, length = frame.http_span
    if length == 0:
        return

    view = memoryview(buf)[start:start + length]
    offset = 0
    for _ in range(MAX_HTTP_ITEMS):
        try:
            item_length, sort, _ = read_item_header(view, offset)
        except FramingError as e:
            raise FramingError(str(e), start + offset) from None
        offset += ITEM_HEADER_BYTES
        if sort == Sort.TERMINATOR:
            return

        try:
            data = _item_payload(view, offset, item_length)
        except FramingError as e:
            raise FramingError(str(e), start + offset) from None

        if sort == Sort.CGI:
            name, _, value = _text(data).partition("=")
            frame.cgi[name] = value
        elif sort == Sort.CONTENT:
            frame.payload = bytes(data)
        elif sort == Sort.SYSTEM:
            _decode_system_variable(data, frame)
        offset += item_length

    raise FramingError(
        f"HTTP item list not terminated within {MAX_HTTP_ITEMS} items",
        start + offset,
    )


def decode_request(buf: BytesLike) -> RequestFrame:
    """
    Decode one request envelope.

    Args:
        buf: Raw bytes of one envelope, as cut by RequestAssembler.

    Returns:
        A fully populated RequestFrame.

    Raises:
        FramingError: If any length points outside the buffer or either
                      item list misses its terminator.
    """
    frame = RequestFrame()
    _decode_header(buf, frame)
    _decode_outer_items(buf, frame)
    _decode_http_items(buf, frame)
    return frame


class RequestAssembler:
    """
    Cuts a connection's byte stream into request envelopes.

    TCP does not keep the peer's write boundaries: one read may carry part
    of a large request, or two small ones back to back. Bytes are buffered
    until the header's total length has arrived; whatever follows stays
    buffered for the next envelope.

        assembler.feed(data)
        while True:
            raw = assembler.next_frame()
            if raw is None:
                break  # wait for more bytes
            handle(decode_request(raw))

    Args:
        max_size: Largest envelope accepted, in bytes.
    """

    def __init__(self, max_size: int = MAX_SIZE):
        self.max_size = max_size
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Bytes received but not yet returned as an envelope."""
        return len(self._buffer)

    def feed(self, data: BytesLike) -> None:
        self._buffer.extend(data)

    def next_frame(self) -> Optional[bytes]:
        """
        Take the next complete envelope off the buffer.

        Returns:
            The raw envelope, or None until enough bytes have arrived.

        Raises:
            FramingError: If the declared total length is shorter than the
                          header or larger than max_size.
        """
        if len(self._buffer) < SIZE_BYTES:
            return None

        total_length = read_size(self._buffer, HEADER_TOTAL_LENGTH)
        if total_length < HEADER_BYTES:
            raise FramingError(
                f"Declared request length {total_length} is shorter than the "
                f"{HEADER_BYTES}-byte header",
                HEADER_TOTAL_LENGTH,
            )
        if total_length > self.max_size:
            raise FramingError(
                f"Declared request length {total_length} exceeds the "
                f"{self.max_size}-byte limit",
                HEADER_TOTAL_LENGTH,
            )
        if len(self._buffer) < total_length:
            return None

        raw = bytes(self._buffer[:total_length])
        del self._buffer[:total_length]
        return raw


class RequestBuilder:
    """
    Builder for request envelopes, the web-server module's side of the
    protocol.

    Useful for tests and for driving a gateway from local tooling:

        raw = (RequestBuilder()
            .function("myapp.handlers")
            .cgi("REQUEST_METHOD", "GET")
            .cgi("QUERY_STRING", "a=1&b=2")
            .request_no(42)
            .build())
    """

    def __init__(self):
        self._function = ""
        self._context = ""
        self._parameters = ""
        self._command = 0
        self._output_buffer_size = 2048
        self._encoding_flag = 0
        self._header_request_no = 0
        self._items: list = []

    def function(self, name: str) -> "RequestBuilder":
        self._function = name
        return self

    def context(self, value: str) -> "RequestBuilder":
        self._context = value
        return self

    def parameters(self, value: str) -> "RequestBuilder":
        self._parameters = value
        return self

    def command(self, code: int) -> "RequestBuilder":
        self._command = code
        return self

    def output_buffer_size(self, size: int) -> "RequestBuilder":
        self._output_buffer_size = size
        return self

    def utf16(self, enabled: bool = True) -> "RequestBuilder":
        self._encoding_flag = 1 if enabled else 0
        return self

    def header_request_no(self, number: int) -> "RequestBuilder":
        """Set the request number carried in the fixed header."""
        self._header_request_no = number
        return self

    def cgi(self, name: str, value: str) -> "RequestBuilder":
        self._items.append((Sort.CGI, f"{name}={value}".encode(TEXT_ENCODING)))
        return self

    def payload(self, data: bytes) -> "RequestBuilder":
        self._items.append((Sort.CONTENT, bytes(data)))
        return self

    def system(self, name: str, value: str) -> "RequestBuilder":
        self._items.append((Sort.SYSTEM, f"{name}={value}".encode(TEXT_ENCODING)))
        return self

    def request_no(self, number: int) -> "RequestBuilder":
        """Add the "no" system variable in its binary form."""
        number_bytes = bytearray()
        write_size(number_bytes, 0, number)
        self._items.append((Sort.SYSTEM, b"no=" + bytes(number_bytes)))
        return self

    def build_http_items(self) -> bytes:
        """Encode the nested HTTP item list, terminator included."""
        buf = bytearray()
        offset = 0
        for sort, data in self._items:
            offset = write_tagged_item(buf, offset, data, sort)
        offset = write_tagged_item(buf, offset, b"", Sort.TERMINATOR)
        return bytes(buf[:offset])

    def build(self) -> bytes:
        buf = bytearray(HEADER_BYTES)
        buf[HEADER_COMMAND] = self._command
        write_size(buf, HEADER_OUTPUT_BUFFER_SIZE, self._output_buffer_size)
        buf[HEADER_ENCODING] = self._encoding_flag
        write_size(buf, HEADER_REQUEST_NO, self._header_request_no)

        offset = HEADER_BYTES
        arguments = [
            self._function.encode(TEXT_ENCODING),
            self._context.encode(TEXT_ENCODING),
            self.build_http_items(),
            self._parameters.encode(TEXT_ENCODING),
        ]
        for data in arguments:
            offset = write_tagged_item(buf, offset, data, Sort.ARGUMENT)
        offset = write_tagged_item(buf, offset, b"", Sort.TERMINATOR)

        write_size(buf, HEADER_TOTAL_LENGTH, offset)
        return bytes(buf[:offset])


__all__ = [
    "RequestFrame",
    "RequestBuilder",
    "RequestAssembler",
    "decode_request",
    "FramingError",
]

"""
=============================================================================
GATEWAY WIRE PROTOCOL
=============================================================================

The byte-level protocol spoken with the web-server module.

    constants.py   Sort codes, header offsets, scan bounds, reserved keys
    codec.py       Size / tagged item / control head / chunk / terminator
    request.py     Request envelope decoding (and building, for peers)
    response.py    Identification, acknowledgement and response frames

All integers on the wire are unsigned 32-bit little-endian.

=============================================================================
"""

from .constants import Sort
from .codec import (
    FramingError,
    write_size, read_size,
    write_tagged_item, read_item_header,
    write_control_head, write_chunk, write_terminator,
)
from .request import RequestFrame, RequestBuilder, RequestAssembler, decode_request
from .response import ResponseEncoder, ERROR_RESPONSE

__all__ = [
    "Sort",
    "FramingError",
    "write_size",
    "read_size",
    "write_tagged_item",
    "read_item_header",
    "write_control_head",
    "write_chunk",
    "write_terminator",
    "RequestFrame",
    "RequestBuilder",
    "RequestAssembler",
    "decode_request",
    "ResponseEncoder",
    "ERROR_RESPONSE",
]

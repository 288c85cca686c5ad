"""
=============================================================================
WIRE PROTOCOL CODEC
=============================================================================

Encode/decode primitives for the length-tagged block format spoken between
the web-server module and the gateway.

Every primitive works on a buffer plus an explicit cursor (offset) and
returns the new cursor, so frames are assembled by threading one offset
through a sequence of calls:

    offset = 0
    offset = write_control_head(buf, offset, 0, ACK_FRAMING)
    offset = write_control_head(buf, offset, request_no, ACK_REQUEST_NO)
    conn.send(bytes(buf[:offset]))

=============================================================================
BYTE LAYOUT
=============================================================================

    SIZE            4 bytes, unsigned, little-endian

    TAGGED ITEM     ┌──────────┬─────┬─────────────────┐
                    │ size (4) │ tag │ payload (size)  │
                    └──────────┴─────┴─────────────────┘

    CONTROL HEAD    ┌──────────┬─────────┐
                    │ size (4) │ command │         (no payload)
                    └──────────┴─────────┘

    CHUNK           ┌──────────┬─────────────────┐
                    │ size (4) │ payload (size)  │   (no tag byte)
                    └──────────┴─────────────────┘

    TERMINATOR      ┌─────────────────────┐
                    │ FF FF FF FF         │
                    └─────────────────────┘

=============================================================================
BUFFERS
=============================================================================

Writers take a bytearray and grow it when a write would run past its end,
so a scratch buffer sized for typical responses still copes with large
ones. Readers accept any bytes-like object (bytes, bytearray, memoryview)
and never read past its end: a short buffer raises FramingError.

=============================================================================
"""

import struct
from typing import Tuple, Union

from .constants import (
    SORT_FACTOR, MAX_SORT, MAX_TYPE, MAX_SIZE,
    SIZE_BYTES, ITEM_HEADER_BYTES, TERMINATOR_MARK,
)


BytesLike = Union[bytes, bytearray, memoryview]

_SIZE = struct.Struct("<I")


class FramingError(ValueError):
    """
    The byte stream does not follow the framing rules.

    Raised for lengths that would read outside the buffer and for item
    lists that are not terminated within their scan bound.

    Attributes:
        offset: Cursor position where the problem was detected.
    """

    def __init__(self, message: str, offset: int = -1):
        super().__init__(message)
        self.offset = offset


def _ensure_capacity(buf: bytearray, end: int) -> None:
    """Grow buf with zero bytes so that buf[:end] is addressable."""
    if len(buf) < end:
        buf.extend(bytes(end - len(buf)))


def _require(buf: BytesLike, offset: int, count: int, what: str) -> None:
    """Raise FramingError unless count bytes are readable at offset."""
    if offset < 0 or offset + count > len(buf):
        raise FramingError(
            f"{what} needs {count} bytes at offset {offset}, "
            f"buffer holds {len(buf)}",
            offset,
        )


def _check_size(n: int) -> None:
    if not 0 <= n <= MAX_SIZE:
        raise ValueError(f"Size {n} does not fit in an unsigned 32-bit field")


# ─────────────────────────────────────────────────────────────────────────
# SIZES
# ─────────────────────────────────────────────────────────────────────────

def write_size(buf: bytearray, offset: int, n: int) -> int:
    """
    Write n as a 4-byte little-endian unsigned integer.

    Returns:
        The offset just past the written size.
    """
    _check_size(n)
    _ensure_capacity(buf, offset + SIZE_BYTES)
    _SIZE.pack_into(buf, offset, n)
    return offset + SIZE_BYTES


def read_size(buf: BytesLike, offset: int) -> int:
    """
    Read a 4-byte little-endian unsigned integer.

    Raises:
        FramingError: If fewer than 4 bytes remain at offset.
    """
    _require(buf, offset, SIZE_BYTES, "size")
    return _SIZE.unpack_from(buf, offset)[0]


# ─────────────────────────────────────────────────────────────────────────
# TAGGED ITEMS
# ─────────────────────────────────────────────────────────────────────────

def make_tag(sort: int, type_: int) -> int:
    """Combine a sort code and a type into the one-byte tag."""
    if not 0 <= sort <= MAX_SORT:
        raise ValueError(f"Sort {sort} out of range 0-{MAX_SORT}")
    if not 0 <= type_ <= MAX_TYPE:
        raise ValueError(f"Type {type_} out of range 0-{MAX_TYPE}")
    return sort * SORT_FACTOR + type_


def split_tag(tag: int) -> Tuple[int, int]:
    """Inverse of make_tag: returns (sort, type)."""
    return divmod(tag, SORT_FACTOR)


def write_tagged_item(
    buf: bytearray,
    offset: int,
    data: BytesLike,
    sort: int,
    type_: int = 0,
) -> int:
    """
    Write size(4) | tag(1) | payload.

    Args:
        buf: Output buffer (grown if needed).
        offset: Where the item starts.
        data: Payload bytes.
        sort: Semantic category (0-9).
        type_: Sub-kind (0-19).

    Returns:
        The offset just past the payload.
    """
    tag = make_tag(sort, type_)
    length = len(data)
    offset = write_size(buf, offset, length)
    _ensure_capacity(buf, offset + 1 + length)
    buf[offset] = tag
    offset += 1
    buf[offset:offset + length] = data
    return offset + length


def read_item_header(buf: BytesLike, offset: int) -> Tuple[int, int, int]:
    """
    Read the 5-byte header of a tagged item.

    Returns:
        (length, sort, type) of the item whose header starts at offset.

    Raises:
        FramingError: If the header runs past the end of the buffer.
    """
    _require(buf, offset, ITEM_HEADER_BYTES, "item header")
    length = _SIZE.unpack_from(buf, offset)[0]
    sort, type_ = split_tag(buf[offset + SIZE_BYTES])
    return length, sort, type_


# ─────────────────────────────────────────────────────────────────────────
# RESPONSE FRAMES
# ─────────────────────────────────────────────────────────────────────────

def write_control_head(buf: bytearray, offset: int, length: int, command: int) -> int:
    """
    Write size(4) | command(1) with no payload.

    Used for the short acknowledgement frames sent ahead of a response.
    """
    if not 0 <= command <= 0xFF:
        raise ValueError(f"Command {command} does not fit in one byte")
    offset = write_size(buf, offset, length)
    _ensure_capacity(buf, offset + 1)
    buf[offset] = command
    return offset + 1


def write_chunk(buf: bytearray, offset: int, data: BytesLike, length: int = None) -> int:
    """
    Write size(4) | payload with no tag byte.

    Exactly length bytes of data are written (all of it by default), so a
    reused buffer never carries bytes of an earlier, longer frame past the
    returned offset.
    """
    if length is None:
        length = len(data)
    if length > len(data):
        raise ValueError(f"Chunk length {length} exceeds data length {len(data)}")
    offset = write_size(buf, offset, length)
    _ensure_capacity(buf, offset + length)
    buf[offset:offset + length] = data[:length]
    return offset + length


def write_terminator(buf: bytearray, offset: int) -> int:
    """Write the all-ones end marker and return offset + 4."""
    _ensure_capacity(buf, offset + SIZE_BYTES)
    buf[offset:offset + SIZE_BYTES] = TERMINATOR_MARK
    return offset + SIZE_BYTES

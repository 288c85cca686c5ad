"""
=============================================================================
WIRE PROTOCOL CONSTANTS
=============================================================================

Every number the gateway protocol agrees on with the web-server module
lives here: item sort codes, header offsets, scan bounds and the reserved
keys of the system variable map.

=============================================================================
THE TAG BYTE
=============================================================================

Each item on the wire carries one tag byte after its 4-byte length:

    ┌────────────────────┬───────────┬──────────────────────────────┐
    │ size (uint32, LE)  │ tag byte  │ payload (size bytes)         │
    └────────────────────┴───────────┴──────────────────────────────┘
                              │
                              └── tag = sort * 20 + type

    sort  (0-9)   semantic category of the item
    type  (0-19)  sub-kind inside that category

    ┌────────┬─────────────────────────────────────────────────────┐
    │ Sort   │ Meaning                                             │
    ├────────┼─────────────────────────────────────────────────────┤
    │  0     │ Data (self-identification frame)                    │
    │  1     │ Argument of the outer envelope                      │
    │  5     │ CGI environment variable  "NAME=value"              │
    │  6     │ Request payload (body)                              │
    │  8     │ System variable           "name=value"              │
    │  9     │ Terminator - no more items in this list             │
    └────────┴─────────────────────────────────────────────────────┘

=============================================================================
THE OUTER HEADER
=============================================================================

    offset  0   total length       uint32
    offset  4   command code       1 byte
    offset  5   output buffer size uint32
    offset  9   encoding flag      1 byte (non-zero = UTF-16 client)
    offset 10   request number     uint32
    offset 14   reserved           1 byte
    offset 15   first outer item

=============================================================================
"""

from enum import IntEnum


class Sort(IntEnum):
    """
    Item sort codes.

    Only the categories the gateway produces or interprets are named.
    """
    DATA = 0
    ARGUMENT = 1
    CGI = 5
    CONTENT = 6
    SYSTEM = 8
    TERMINATOR = 9


# Tag byte arithmetic
SORT_FACTOR = 20
MAX_SORT = 9
MAX_TYPE = 19

# Sizes
SIZE_BYTES = 4
ITEM_HEADER_BYTES = SIZE_BYTES + 1
MAX_SIZE = 0xFFFFFFFF
TERMINATOR_MARK = b"\xff\xff\xff\xff"

# Outer header layout
HEADER_TOTAL_LENGTH = 0
HEADER_COMMAND = 4
HEADER_OUTPUT_BUFFER_SIZE = 5
HEADER_ENCODING = 9
HEADER_REQUEST_NO = 10
HEADER_BYTES = 15

# Scan bounds
MAX_OUTER_ITEMS = 10
MAX_HTTP_ITEMS = 1000

# Outer item positions
ITEM_FUNCTION = 0
ITEM_CONTEXT = 1
ITEM_HTTP = 2
ITEM_PARAMETERS = 3

# Acknowledgement commands
ACK_FRAMING = 0
ACK_REQUEST_NO = 1

# Reserved keys
QUERY_STRING = "QUERY_STRING"
SYS_REQUEST_NO = "no"
SYS_FUNCTION = "function"
SYS_CONNECTION = "connection"
SYS_CANCELLATION = "cancellation"

"""
Unit tests for request envelope decoding.
"""

import pytest

from gatewayserver.protocol import RequestAssembler, RequestBuilder, FramingError, decode_request
from gatewayserver.protocol.codec import write_size, write_tagged_item
from gatewayserver.protocol.constants import (
    Sort, HEADER_BYTES, HEADER_TOTAL_LENGTH, MAX_OUTER_ITEMS, MAX_HTTP_ITEMS,
)


def envelope(outer_items, terminate=True) -> bytes:
    """Header plus the given (data, sort) outer items."""
    buf = bytearray(HEADER_BYTES)
    offset = HEADER_BYTES
    for data, sort in outer_items:
        offset = write_tagged_item(buf, offset, data, sort)
    if terminate:
        offset = write_tagged_item(buf, offset, b"", Sort.TERMINATOR)
    write_size(buf, HEADER_TOTAL_LENGTH, offset)
    return bytes(buf[:offset])


def http_items(count, sort=Sort.CGI, terminate=True) -> bytes:
    buf = bytearray()
    offset = 0
    for i in range(count):
        offset = write_tagged_item(buf, offset, f"VAR_{i}={i}".encode(), sort)
    if terminate:
        offset = write_tagged_item(buf, offset, b"", Sort.TERMINATOR)
    return bytes(buf[:offset])


class TestHeader:
    """Tests for the fixed 15-byte header."""

    def test_header_fields(self):
        raw = (RequestBuilder()
            .command(3)
            .output_buffer_size(8192)
            .header_request_no(7)
            .build())

        request = decode_request(raw)

        assert request.total_length == len(raw)
        assert request.command == 3
        assert request.output_buffer_size == 8192
        assert request.request_no == 7
        assert not request.is_utf16

    def test_utf16_flag(self):
        request = decode_request(RequestBuilder().utf16().build())
        assert request.is_utf16

    def test_short_header(self):
        """Test that fewer than 15 bytes is a framing error."""
        with pytest.raises(FramingError):
            decode_request(b"\x00" * 10)


class TestOuterItems:
    """Tests for the top-level item list."""

    def test_positional_items(self):
        raw = (RequestBuilder()
            .function("myapp.orders")
            .context("ctx")
            .parameters("p=1")
            .build())

        request = decode_request(raw)

        assert request.function == "myapp.orders"
        assert request.context == "ctx"
        assert request.parameters == "p=1"

    def test_http_span_locates_nested_list(self):
        """Test that item 2 is located, not copied."""
        builder = RequestBuilder().cgi("A", "1")
        raw = builder.build()

        request = decode_request(raw)
        start, length = request.http_span

        assert raw[start:start + length] == builder.build_http_items()

    def test_early_terminator(self):
        """Test that a terminator before item 4 ends the scan."""
        request = decode_request(envelope([(b"fn", Sort.ARGUMENT)]))

        assert request.function == "fn"
        assert request.context == ""
        assert request.http_span == (0, 0)
        assert request.cgi == {}

    def test_terminator_as_tenth_item(self):
        items = [
            (b"x", Sort.ARGUMENT),
            (b"", Sort.ARGUMENT),
            (RequestBuilder().cgi("A", "1").build_http_items(), Sort.ARGUMENT),
        ] + [(b"p", Sort.ARGUMENT)] * (MAX_OUTER_ITEMS - 4)

        request = decode_request(envelope(items))

        assert request.function == "x"
        assert request.parameters == "p"
        assert request.cgi == {"A": "1"}

    def test_missing_terminator_within_bound(self):
        """Test that a terminator past the 10th item is never reached."""
        items = [(b"x", Sort.ARGUMENT)] * MAX_OUTER_ITEMS
        with pytest.raises(FramingError) as exc_info:
            decode_request(envelope(items, terminate=True))
        assert "10 items" in str(exc_info.value)

    def test_item_length_past_buffer(self):
        raw = bytearray(envelope([(b"function", Sort.ARGUMENT)]))
        write_size(raw, HEADER_BYTES, 1000)

        with pytest.raises(FramingError):
            decode_request(bytes(raw))

    def test_truncated_item_header(self):
        raw = envelope([(b"fn", Sort.ARGUMENT)], terminate=False) + b"\x00\x00"
        with pytest.raises(FramingError):
            decode_request(raw)


class TestHTTPItems:
    """Tests for the nested CGI / payload / system item list."""

    def test_cgi_variables(self, builder):
        request = decode_request(builder.build())

        assert request.cgi == {
            "REQUEST_METHOD": "GET",
            "SCRIPT_NAME": "/api",
            "QUERY_STRING": "page=1",
        }

    def test_query_string_not_split(self):
        request = decode_request(RequestBuilder().cgi("QUERY_STRING", "a=b=c").build())

        assert request.cgi["QUERY_STRING"] == "a=b=c"
        assert request.query_string == "a=b=c"

    def test_duplicate_cgi_last_wins(self):
        raw = RequestBuilder().cgi("HTTP_HOST", "one").cgi("HTTP_HOST", "two").build()
        assert decode_request(raw).cgi["HTTP_HOST"] == "two"

    def test_no_payload(self, builder):
        assert decode_request(builder.build()).payload is None

    def test_payload_replaced(self):
        raw = RequestBuilder().payload(b"first").payload(b"second").build()
        assert decode_request(raw).payload == b"second"

    def test_binary_payload(self):
        body = bytes(range(256))
        assert decode_request(RequestBuilder().payload(body).build()).payload == body

    def test_request_no_override(self):
        """Test that system "no" replaces the header sequence number."""
        raw = RequestBuilder().header_request_no(5).request_no(42).build()

        request = decode_request(raw)

        assert request.request_no == 42
        assert request.system["no"] == 42

    def test_function_override(self):
        raw = (RequestBuilder()
            .function("fromEnvelope")
            .system("function", "myHandler")
            .build())

        request = decode_request(raw)

        assert request.function == "myHandler"
        assert request.system["function"] == "myHandler"

    def test_other_system_variables(self):
        request = decode_request(RequestBuilder().system("key", "a=b").build())
        assert request.system["key"] == "a=b"

    def test_thousand_items_terminated(self):
        raw = envelope([
            (b"", Sort.ARGUMENT),
            (b"", Sort.ARGUMENT),
            (http_items(MAX_HTTP_ITEMS - 1), Sort.ARGUMENT),
        ])

        request = decode_request(raw)

        assert len(request.cgi) == MAX_HTTP_ITEMS - 1

    def test_missing_terminator_within_bound(self):
        """Test that a terminator as item 1001 is a framing error."""
        raw = envelope([
            (b"", Sort.ARGUMENT),
            (b"", Sort.ARGUMENT),
            (http_items(MAX_HTTP_ITEMS), Sort.ARGUMENT),
        ])

        with pytest.raises(FramingError) as exc_info:
            decode_request(raw)
        assert "1000 items" in str(exc_info.value)

    def test_unterminated_list_in_span(self):
        """Test that the nested scan never reads past its own span."""
        raw = envelope([
            (b"", Sort.ARGUMENT),
            (b"", Sort.ARGUMENT),
            (http_items(2, terminate=False), Sort.ARGUMENT),
            (b"p", Sort.ARGUMENT),
        ])

        with pytest.raises(FramingError):
            decode_request(raw)

    def test_truncated_nested_item(self):
        nested = bytearray(http_items(1))
        write_size(nested, 0, 500)
        raw = envelope([(b"", Sort.ARGUMENT), (b"", Sort.ARGUMENT), (bytes(nested), Sort.ARGUMENT)])

        with pytest.raises(FramingError) as exc_info:
            decode_request(raw)
        assert exc_info.value.offset > HEADER_BYTES


class TestRequestAssembler:
    """Tests for cutting the connection byte stream into envelopes."""

    def test_waits_for_whole_envelope(self):
        raw = RequestBuilder().payload(b"x" * 1000).build()
        assembler = RequestAssembler()

        assembler.feed(raw[:2])
        assert assembler.next_frame() is None
        assembler.feed(raw[2:500])
        assert assembler.next_frame() is None
        assembler.feed(raw[500:])

        assert assembler.next_frame() == raw
        assert assembler.pending == 0

    def test_two_envelopes_in_one_read(self):
        first = RequestBuilder().request_no(1).build()
        second = RequestBuilder().request_no(2).payload(b"body").build()
        assembler = RequestAssembler()

        assembler.feed(first + second)

        assert assembler.next_frame() == first
        assert assembler.next_frame() == second
        assert assembler.next_frame() is None
        assert assembler.pending == 0

    def test_partial_trailing_envelope_kept(self):
        first = RequestBuilder().request_no(1).build()
        second = RequestBuilder().request_no(2).build()
        assembler = RequestAssembler()

        assembler.feed(first + second[:20])

        assert assembler.next_frame() == first
        assert assembler.next_frame() is None
        assert assembler.pending == 20

        assembler.feed(second[20:])
        assert decode_request(assembler.next_frame()).request_no == 2

    def test_length_shorter_than_header(self):
        assembler = RequestAssembler()
        assembler.feed(b"\x00" * 20)

        with pytest.raises(FramingError) as exc_info:
            assembler.next_frame()
        assert exc_info.value.offset == HEADER_TOTAL_LENGTH

    def test_length_over_limit(self):
        raw = RequestBuilder().payload(b"x" * 200).build()
        assembler = RequestAssembler(max_size=100)
        assembler.feed(raw[:4])

        with pytest.raises(FramingError) as exc_info:
            assembler.next_frame()
        assert "100-byte limit" in str(exc_info.value)


class TestRequestBuilder:
    """Tests for the peer-side envelope builder."""

    def test_total_length(self, builder):
        raw = builder.payload(b"x" * 100).build()
        assert int.from_bytes(raw[0:4], "little") == len(raw)

    def test_outer_terminator(self):
        raw = RequestBuilder().build()
        assert raw[-5:] == b"\x00\x00\x00\x00" + bytes([Sort.TERMINATOR * 20])

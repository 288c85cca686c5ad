"""
Unit tests for handler invocation.
"""

import asyncio

import pytest

from gatewayserver.handlers import invoke, to_body
from gatewayserver.handlers import info


@pytest.fixture
def loop():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


class TestToBody:
    """Tests for handler result normalization."""

    def test_bytes(self):
        assert to_body(b"abc") == b"abc"
        assert to_body(bytearray(b"abc")) == b"abc"
        assert to_body(memoryview(b"abc")) == b"abc"

    def test_str_is_utf8(self):
        assert to_body("héllo") == "héllo".encode("utf-8")

    def test_none_is_empty(self):
        assert to_body(None) == b""

    def test_other_types_rejected(self):
        with pytest.raises(TypeError):
            to_body({"status": 200})


class TestInvoke:
    """Tests for direct and suspending handlers."""

    def test_sync_handler(self, loop):
        def handler(cgi, payload, system):
            return cgi["REQUEST_METHOD"].encode() + payload

        assert invoke(handler, {"REQUEST_METHOD": "POST"}, b"!", {}, loop) == b"POST!"

    def test_async_handler(self, loop):
        async def handler(cgi, payload, system):
            await asyncio.sleep(0)
            return "async"

        assert invoke(handler, {}, None, {}, loop) == b"async"

    def test_system_map_passed(self, loop):
        seen = {}

        def handler(cgi, payload, system):
            seen.update(system)

        invoke(handler, {}, None, {"no": 3}, loop)

        assert seen == {"no": 3}

    def test_sync_error_propagates(self, loop):
        def handler(cgi, payload, system):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            invoke(handler, {}, None, {}, loop)

    def test_async_error_propagates(self, loop):
        async def handler(cgi, payload, system):
            raise ValueError("async boom")

        with pytest.raises(ValueError):
            invoke(handler, {}, None, {}, loop)

    def test_loop_reusable_after_error(self, loop):
        async def failing(cgi, payload, system):
            raise ValueError("once")

        async def working(cgi, payload, system):
            return b"fine"

        with pytest.raises(ValueError):
            invoke(failing, {}, None, {}, loop)
        assert invoke(working, {}, None, {}, loop) == b"fine"


class TestInfoHandler:
    """Tests for the built-in diagnostic handler."""

    def test_response(self):
        body = info.handler({"REQUEST_METHOD": "GET", "QUERY_STRING": "a=1"}, None, {"no": 9})

        head, _, text = body.partition(b"\r\n\r\n")
        assert head.startswith(b"HTTP/1.1 200 OK")
        assert f"Content-Length: {len(text)}".encode() in head
        assert b"request no:     9" in text
        assert b"QUERY_STRING=a=1" in text

    def test_render_sorted(self):
        text = info.render({"B": "2", "A": "1"}, {})
        assert text.index("A=1") < text.index("B=2")

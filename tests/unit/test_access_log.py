"""
Unit tests for access logging.
"""

import json
import logging

from gatewayserver.access_log import RequestLog, log_request, status_line


class TestStatusLine:

    def test_first_line(self):
        assert status_line(b"HTTP/1.1 200 OK\r\nContent-Length: 0\r\n\r\n") == "HTTP/1.1 200 OK"

    def test_empty_body(self):
        assert status_line(b"") == "-"


class TestRequestLog:
    """Tests for RequestLog formatting."""

    def entry(self):
        return RequestLog.create(
            worker=48213,
            request_no=17,
            function="myapp.orders",
            body=b"HTTP/1.1 200 OK\r\n\r\nhello",
            duration_ms=5.214,
        )

    def test_text(self):
        assert self.entry().to_text() == '[48213] #17 myapp.orders "HTTP/1.1 200 OK" 24 5.21ms'

    def test_dict(self):
        data = self.entry().to_dict()

        assert data["status"] == "HTTP/1.1 200 OK"
        assert data["content_length"] == 24
        assert data["duration_ms"] == 5.21

    def test_log_json(self, caplog):
        with caplog.at_level(logging.INFO, logger="gatewayserver.access"):
            log_request(self.entry(), "json")

        record = json.loads(caplog.records[-1].getMessage())
        assert record["request_no"] == 17
        assert record["worker"] == 48213

    def test_log_text(self, caplog):
        with caplog.at_level(logging.INFO, logger="gatewayserver.access"):
            log_request(self.entry(), "text")

        assert "myapp.orders" in caplog.records[-1].getMessage()

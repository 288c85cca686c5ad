"""
Unit tests for the cooperative cancellation token.
"""

from gatewayserver.core import CancellationToken


class TestCancellationToken:

    def test_initial_state(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token.wait(0) is False

    def test_cancel(self):
        token = CancellationToken()
        token.cancel()
        assert token.cancelled
        assert token.wait(0) is True

    def test_subscribers_run_once(self):
        token = CancellationToken()
        calls = []
        token.subscribe(lambda: calls.append("a"))

        token.cancel()
        token.cancel()

        assert calls == ["a"]

    def test_subscribe_after_cancel_runs_immediately(self):
        token = CancellationToken()
        token.cancel()
        calls = []

        token.subscribe(lambda: calls.append("late"))

        assert calls == ["late"]

    def test_failing_subscriber_does_not_block_others(self):
        token = CancellationToken()
        calls = []

        def failing():
            raise RuntimeError("subscriber failed")

        token.subscribe(failing)
        token.subscribe(lambda: calls.append("second"))
        token.cancel()

        assert calls == ["second"]

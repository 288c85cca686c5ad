"""
=============================================================================
EXAMPLE: ASYNC HANDLER WITH COOPERATIVE CANCELLATION
=============================================================================

A handler may be a coroutine function. The worker runs it on its own
event loop and waits for the result before writing the response.

When the gateway shuts down, the worker cancels system["cancellation"].
A long-running handler can poll it and return early; otherwise the
worker exits anyway once its grace period ends.

    function name: examples/async_application.py:report

=============================================================================
"""

import asyncio


async def report(cgi, payload, system):
    """Produce ten lines, one every 100ms, stopping early on cancellation."""
    token = system["cancellation"]
    lines = []

    for step in range(10):
        if token.cancelled:
            lines.append("cancelled")
            break
        await asyncio.sleep(0.1)
        lines.append(f"step {step} done")

    body = ("\n".join(lines) + "\n").encode("utf-8")
    return (
        b"HTTP/1.1 200 OK\r\n"
        b"Content-Type: text/plain\r\n"
        + f"Content-Length: {len(body)}\r\n\r\n".encode("ascii")
        + body
    )

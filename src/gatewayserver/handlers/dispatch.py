"""
Handler invocation.

A handler is called as ``handler(cgi, payload, system)`` and returns the
response either directly or as an awaitable. Awaitables are driven to
completion on the worker's own event loop.
"""

import asyncio
import inspect
from typing import Any, Dict, Optional

from .registry import Handler


def to_body(result: Any) -> bytes:
    """
    Convert a handler result to response bytes.

    bytes-like values pass through, str is UTF-8 encoded and None becomes
    an empty body.

    Raises:
        TypeError: For any other result type.
    """
    if result is None:
        return b""
    if isinstance(result, (bytes, bytearray, memoryview)):
        return bytes(result)
    if isinstance(result, str):
        return result.encode("utf-8")
    raise TypeError(f"Handler returned {type(result).__name__}, expected bytes or str")


def invoke(
    handler: Handler,
    cgi: Dict[str, str],
    payload: Optional[bytes],
    system: Dict[str, Any],
    loop: asyncio.AbstractEventLoop,
) -> bytes:
    """
    Call handler and wait for its result if it suspends.

    Exceptions raised by the handler propagate to the caller.
    """
    result = handler(cgi, payload, system)
    if inspect.isawaitable(result):
        result = loop.run_until_complete(result)
    return to_body(result)

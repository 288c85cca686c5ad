"""
=============================================================================
HANDLERS
=============================================================================

Loading and invoking application handlers.

1. HandlerRegistry / ImportResolver
   - Resolve a function name to a handler callable
   - Cache loaded handlers for the lifetime of a worker

2. invoke()
   - Call direct and suspending (async) handlers alike
   - Normalize results to response bytes

3. info
   - Built-in diagnostic handler (gatewayserver.handlers.info)

=============================================================================
WRITING A HANDLER
=============================================================================

    # orders.py
    def handler(cgi, payload, system):
        method = cgi.get("REQUEST_METHOD", "GET")
        body = f"method={method}\\n"
        return (
            "HTTP/1.1 200 OK\\r\\n"
            "Content-Type: text/plain\\r\\n"
            f"Content-Length: {len(body)}\\r\\n"
            "\\r\\n" + body
        )

    # async variant, watching for shutdown
    async def handler(cgi, payload, system):
        token = system["cancellation"]
        ...

=============================================================================
"""

from .registry import HandlerRegistry, HandlerLoadError, ImportResolver
from .dispatch import invoke, to_body

__all__ = [
    "HandlerRegistry",
    "HandlerLoadError",
    "ImportResolver",
    "invoke",
    "to_body",
]

"""
=============================================================================
HANDLER REGISTRY
=============================================================================

Maps a function name from a request to a loaded handler callable.

=============================================================================
HANDLER REFERENCES
=============================================================================

A function name is resolved by the registry's resolver. The default
ImportResolver understands three forms:

    myapp.orders                 import module, use its `handler`
    myapp.orders:create          import module, use its `create`
    /srv/app/orders.py[:attr]    load the file as a module

An empty name stands for the configured default application.

=============================================================================
CACHING
=============================================================================

    resolve("myapp.orders")
        │
        ├── cached?  ── yes ──► return cached handler
        │
        └── no ──► resolver("myapp.orders")
                      │
                      ├── ok     ──► cache, return handler
                      └── fails  ──► HandlerLoadError (nothing cached)

Each worker owns its own registry, so a module is loaded at most once per
worker and never shared between workers.

=============================================================================
"""

import importlib
import importlib.util
import logging
import os
from typing import Any, Callable, Dict, Optional


logger = logging.getLogger(__name__)

Handler = Callable[..., Any]
Resolver = Callable[[str], Handler]

DEFAULT_ATTRIBUTE = "handler"


class HandlerLoadError(Exception):
    """
    A handler could not be loaded.

    Attributes:
        name: The function name that failed to resolve.
    """

    def __init__(self, name: str, message: str):
        super().__init__(f"Cannot load handler {name!r}: {message}")
        self.name = name


class ImportResolver:
    """
    Resolve handler references through the import system.

    Args:
        search_path: Directory that relative file references are resolved
                     against (defaults to the current directory).
    """

    def __init__(self, search_path: Optional[str] = None):
        self.search_path = search_path

    @staticmethod
    def _split(reference: str):
        # "C:\app.py" keeps its drive colon; only a trailing ":attr" counts
        module_ref, sep, attribute = reference.rpartition(":")
        if not sep or not attribute or os.sep in attribute or "/" in attribute:
            return reference, DEFAULT_ATTRIBUTE
        return module_ref, attribute

    @staticmethod
    def _is_path(module_ref: str) -> bool:
        return module_ref.endswith(".py") or "/" in module_ref or os.sep in module_ref

    def _load_file(self, path: str):
        if self.search_path and not os.path.isabs(path):
            path = os.path.join(self.search_path, path)
        if not os.path.isfile(path):
            raise ImportError(f"No handler module at {path}")

        module_name = "_gateway_handler_" + os.path.splitext(os.path.basename(path))[0]
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot create module spec for {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module

    def __call__(self, reference: str) -> Handler:
        module_ref, attribute = self._split(reference)

        if self._is_path(module_ref):
            module = self._load_file(module_ref)
        else:
            module = importlib.import_module(module_ref)

        try:
            return getattr(module, attribute)
        except AttributeError:
            raise ImportError(
                f"Module {module_ref!r} has no attribute {attribute!r}"
            ) from None


class HandlerRegistry:
    """
    Per-worker cache of loaded handlers.

    Usage:
        registry = HandlerRegistry(default="application.py")
        try:
            handler = registry.resolve(request.function)
        except HandlerLoadError:
            ...  # send the fixed error response

    Args:
        resolver: Callable turning a name into a handler. Defaults to an
                  ImportResolver.
        default: Reference used when a request names no function.
    """

    def __init__(self, resolver: Optional[Resolver] = None, default: str = ""):
        self._resolver = resolver or ImportResolver()
        self.default = default
        self._handlers: Dict[str, Handler] = {}

    def resolve(self, name: str) -> Handler:
        """
        Return the handler for name, loading it on first use.

        Raises:
            HandlerLoadError: If the name is empty with no default, the
                              resolver fails, or the result is not callable.
        """
        reference = name or self.default
        if not reference:
            raise HandlerLoadError(name, "no function named and no default application")

        handler = self._handlers.get(reference)
        if handler is not None:
            return handler

        try:
            handler = self._resolver(reference)
        except Exception as e:
            raise HandlerLoadError(reference, str(e)) from e

        if not callable(handler):
            raise HandlerLoadError(reference, f"{type(handler).__name__} object is not callable")

        self._handlers[reference] = handler
        logger.debug(f"Loaded handler {reference!r}")
        return handler

    def __contains__(self, name: str) -> bool:
        return (name or self.default) in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

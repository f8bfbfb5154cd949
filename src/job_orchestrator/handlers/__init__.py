"""Task handlers: the registry plus the built-in ``core`` service."""

from .registry import (
    Handler,
    HandlerDefinition,
    HandlerLookup,
    HandlerRegistry,
    HandlerResult,
    handler_registry,
)
from . import core  # noqa: F401  (registers built-in handlers)

__all__ = [
    "Handler",
    "HandlerDefinition",
    "HandlerLookup",
    "HandlerRegistry",
    "HandlerResult",
    "handler_registry",
]

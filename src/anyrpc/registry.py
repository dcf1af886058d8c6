"""Handler Registry - method name to local handler.

A root channel owns one registry; every sub-channel derived from it holds a
reference to the same instance, so registrations are visible everywhere.
Lookups are explicit key checks on a plain dict, so names like "__init__"
or "get" never resolve to anything but a registered handler.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from .protocol import DuplicateHandlerError

logger = logging.getLogger(__name__)

# handler(payload, aux_data, fire_and_forget) -> result | awaitable result
Handler = Callable[[Any, Any, bool], Any | Awaitable[Any]]


class HandlerRegistry:
    """Mapping of method names to handlers."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def __contains__(self, method: object) -> bool:
        return method in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def get(self, method: str) -> Handler | None:
        """Get the handler for a method, or None."""
        if method in self._handlers:
            return self._handlers[method]
        return None

    def set(self, method: str, handler: Handler, allow_override: bool = False) -> None:
        """Register a handler.

        Raises:
            DuplicateHandlerError: If the method already has a handler and
                override is not allowed
        """
        if method in self._handlers:
            if not allow_override:
                raise DuplicateHandlerError(method)
            logger.debug(f"Replacing handler for method: {method}")
        self._handlers[method] = handler

    def remove(self, method: str) -> bool:
        """Unregister a handler. Returns False if none was registered."""
        return self._handlers.pop(method, None) is not None

    def methods(self) -> list[str]:
        """Registered method names, in registration order."""
        return list(self._handlers)

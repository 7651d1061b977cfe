"""Event-kind to handler mapping.

Handlers are registered during setup and the registry is frozen when the
client starts running; after that it is read without synchronization.
"""

import threading
from collections.abc import Awaitable, Callable
from typing import Any

Handler = Callable[[Any], Awaitable[None] | None]

ANY_KIND = "*"


class HandlerRegistry:
    """Ordered handlers per event kind.

    Multiple handlers per kind are allowed and run in registration order.
    Handlers registered under ``"*"`` receive every event envelope.

    Example:
        >>> registry = HandlerRegistry()
        >>> registry.register_handler("message", print)
        >>> @registry.on("app_mention")
        ... async def mentioned(payload): ...
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = {}
        self._frozen = False
        self._lock = threading.Lock()

    def register_handler(self, event_kind: str, handler: Handler) -> None:
        """Append ``handler`` to the handlers of ``event_kind``.

        Raises:
            ValueError: If ``event_kind`` is empty.
            TypeError: If ``handler`` is not callable.
            RuntimeError: If the registry is already frozen.
        """
        if not event_kind:
            raise ValueError("event_kind must be a non-empty string")
        if not callable(handler):
            raise TypeError(f"handler for '{event_kind}' is not callable")
        with self._lock:
            if self._frozen:
                raise RuntimeError(
                    "handlers must be registered before the client starts running"
                )
            self._handlers.setdefault(event_kind, []).append(handler)

    def on(self, event_kind: str) -> Callable[[Handler], Handler]:
        """Decorator form of :meth:`register_handler`."""

        def _decorator(handler: Handler) -> Handler:
            self.register_handler(event_kind, handler)
            return handler

        return _decorator

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def handlers_for(self, event_kind: str) -> tuple[Handler, ...]:
        return tuple(self._handlers.get(event_kind, ()))

    def resolve(self, *event_kinds: str) -> list[tuple[str, Handler]]:
        """Handlers for each distinct kind in order, then wildcard handlers."""
        resolved: list[tuple[str, Handler]] = []
        seen: set[str] = set()
        for kind in (*event_kinds, ANY_KIND):
            if not kind or kind in seen:
                continue
            seen.add(kind)
            resolved.extend((kind, h) for h in self._handlers.get(kind, ()))
        return resolved

    def kinds(self) -> list[str]:
        return list(self._handlers)

    def __len__(self) -> int:
        return sum(len(h) for h in self._handlers.values())

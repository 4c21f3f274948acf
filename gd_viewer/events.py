"""Minimal observer registry used by the supervisor and the viewer."""

from __future__ import annotations

import logging
from typing import Callable, Generic, List, TypeVar

LOGGER = logging.getLogger(__name__)

E = TypeVar("E")


class EventHub(Generic[E]):
    """Delivers events synchronously to every subscribed callable."""

    def __init__(self) -> None:
        self._listeners: List[Callable[[E], None]] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Callable[[E], None]) -> Callable[[], None]:
        """Register ``listener``; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: E) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                LOGGER.exception("Listener %r failed on %s", listener, event)


__all__ = ["EventHub"]

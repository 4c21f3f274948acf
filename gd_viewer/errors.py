"""Exceptions raised by the transport layer and handled inside the viewer."""

from __future__ import annotations

from typing import Optional


class GdViewerError(Exception):
    pass


class TransportFailure(GdViewerError):
    """A request failed: network error, timeout, bad status, or unreadable body."""

    def __init__(self, url: str, reason: str, status: Optional[int] = None) -> None:
        self.url = url
        self.reason = reason
        self.status = status
        detail = f"HTTP {status}" if status is not None else reason
        super().__init__(f"Request to {url} failed: {detail}")


class ChannelError(GdViewerError):
    """The push channel could not be opened or closed abnormally."""


class MalformedPushMessage(GdViewerError):
    def __init__(self, payload: str) -> None:
        self.payload = payload
        super().__init__(f"Unrecognised push message: {payload[:80]!r}")


__all__ = ["ChannelError", "GdViewerError", "MalformedPushMessage", "TransportFailure"]

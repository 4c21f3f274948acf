"""Dataclasses modelling remote device state, plots, and connection events."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Tuple, Union

from .errors import MalformedPushMessage


@dataclass(frozen=True)
class RemoteState:
    """Snapshot of the graphics device reported by the server."""

    update_id: int
    plot_count: int
    device_active: bool

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> "RemoteState":
        """Build a snapshot from the server's ``{upid, hsize, active}`` object."""
        try:
            return cls(
                update_id=int(raw["upid"]),
                plot_count=int(raw["hsize"]),
                device_active=bool(raw["active"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid state payload: {raw!r}") from exc

    @classmethod
    def from_push_message(cls, message: Union[str, bytes]) -> "RemoteState":
        """Parse a push-channel message, raising MalformedPushMessage if it is not a state."""
        if isinstance(message, bytes):
            message = message.decode("utf-8", errors="replace")
        if not message.startswith("{"):
            raise MalformedPushMessage(message)
        try:
            raw = json.loads(message)
        except json.JSONDecodeError as exc:
            raise MalformedPushMessage(message) from exc
        if not isinstance(raw, dict):
            raise MalformedPushMessage(message)
        try:
            return cls.from_payload(raw)
        except ValueError as exc:
            raise MalformedPushMessage(message) from exc


@dataclass(frozen=True)
class PlotRef:
    """Stable identifier of one plot in the server's history."""

    id: str


@dataclass(frozen=True)
class PlotList:
    """Server state together with the chronological plot history (oldest first)."""

    state: RemoteState
    plots: Tuple[PlotRef, ...]

    @classmethod
    def from_payload(cls, raw: Mapping[str, Any]) -> "PlotList":
        try:
            plots = tuple(PlotRef(id=str(entry["id"])) for entry in raw["plots"])
            state = RemoteState.from_payload(raw["state"])
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Invalid plot list payload: {raw!r}") from exc
        return cls(state=state, plots=plots)


class ConnectionMode(Enum):
    CLOSED = "closed"
    FAST_POLL = "fast_poll"
    SLOW_POLL = "slow_poll"
    PUSHED = "pushed"


# Supervisor events ----------------------------------------------------------


@dataclass(frozen=True)
class StateChanged:
    state: RemoteState


@dataclass(frozen=True)
class ConnectivityChanged:
    connected: bool


@dataclass(frozen=True)
class ModeChanged:
    mode: ConnectionMode


ConnectionEvent = Union[StateChanged, ConnectivityChanged, ModeChanged]


# Viewer events --------------------------------------------------------------


@dataclass(frozen=True)
class DeviceActiveChanged:
    active: bool


@dataclass(frozen=True)
class IndexLabelChanged:
    label: str


@dataclass(frozen=True)
class ZoomLabelChanged:
    label: str


@dataclass(frozen=True)
class ImageChanged:
    """The viewer wants the image element to show ``url``."""

    url: str


ViewerEvent = Union[
    ConnectivityChanged,
    DeviceActiveChanged,
    IndexLabelChanged,
    ZoomLabelChanged,
    ImageChanged,
]


__all__ = [
    "ConnectionEvent",
    "ConnectionMode",
    "ConnectivityChanged",
    "DeviceActiveChanged",
    "ImageChanged",
    "IndexLabelChanged",
    "ModeChanged",
    "PlotList",
    "PlotRef",
    "RemoteState",
    "StateChanged",
    "ViewerEvent",
    "ZoomLabelChanged",
]

"""Viewer orchestration: connection events in, cursor updates and image URLs out."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Callable, Coroutine, Optional, Set, Tuple

from .api import GdApi
from .configuration import AppConfig
from .connection import ConnectionSupervisor
from .errors import TransportFailure
from .events import EventHub
from .navigator import PlotNavigator
from .state import (
    ConnectionEvent,
    ConnectivityChanged,
    DeviceActiveChanged,
    ImageChanged,
    IndexLabelChanged,
    RemoteState,
    StateChanged,
    ViewerEvent,
    ZoomLabelChanged,
)

LOGGER = logging.getLogger(__name__)

COOLDOWN_RESIZE_S = 0.2
SCALE_DEFAULT = 0.8
MIN_SCALE = 0.05

# Appended to the cache-buster when an image is re-requested after the view was hidden.
VISIBILITY_SUFFIX = "v"


class PlotViewer:
    """Keeps the plot cursor in step with the server and emits what to display."""

    def __init__(
        self,
        api: GdApi,
        connection: ConnectionSupervisor,
        *,
        scale_default: float = SCALE_DEFAULT,
        resize_cooldown_s: float = COOLDOWN_RESIZE_S,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._api = api
        self._connection = connection
        self._loop = loop
        self._navigator = PlotNavigator()
        self._events: EventHub[ViewerEvent] = EventHub()

        self._plot_upid = -1
        self._device_active: Optional[bool] = None

        self._scale_default = scale_default
        self._scale_step = scale_default / 12.0
        self._scale = scale_default
        self._element_size: Optional[Tuple[float, float]] = None

        self._resize_cooldown_s = resize_cooldown_s
        self._pending_size: Optional[Tuple[float, float]] = None
        self._resize_handle: Optional[asyncio.TimerHandle] = None

        self._refresh_issued = 0
        self._refresh_applied = 0
        self._tasks: Set[asyncio.Task[None]] = set()

        self._connection.subscribe(self._on_connection_event)

    @classmethod
    def from_config(cls, config: AppConfig) -> "PlotViewer":
        api = GdApi(
            config.server.host,
            token=config.server.token,
            tls=config.server.tls,
            request_timeout_s=config.polling.request_timeout_s,
        )
        connection = ConnectionSupervisor(
            api,
            use_push=config.server.use_push,
            fast_interval_s=config.polling.fast_interval_s,
            slow_interval_s=config.polling.slow_interval_s,
            upgrade_cooldown_s=config.polling.upgrade_cooldown_s,
        )
        return cls(
            api,
            connection,
            scale_default=config.viewer.scale_default,
            resize_cooldown_s=config.viewer.resize_cooldown_s,
        )

    # Properties ---------------------------------------------------------------

    @property
    def api(self) -> GdApi:
        return self._api

    @property
    def connection(self) -> ConnectionSupervisor:
        return self._connection

    @property
    def navigator(self) -> PlotNavigator:
        return self._navigator

    @property
    def device_active(self) -> Optional[bool]:
        return self._device_active

    @property
    def index_label(self) -> str:
        return self._navigator.position_label()

    @property
    def zoom_label(self) -> str:
        return f"{math.ceil(self._scale_default / self._scale * 100)}%"

    def subscribe(self, listener: Callable[[ViewerEvent], None]) -> Callable[[], None]:
        return self._events.subscribe(listener)

    # Lifecycle ----------------------------------------------------------------

    async def start(self) -> None:
        """Open the connection and load the initial plot history."""
        await self._api.start()
        self._connection.open()
        self._emit(IndexLabelChanged(self.index_label))
        self._emit(ZoomLabelChanged(self.zoom_label))
        LOGGER.debug("Initial plot list refresh")
        await self.refresh_plots()

    async def stop(self) -> None:
        if self._resize_handle is not None:
            self._resize_handle.cancel()
            self._resize_handle = None
        await self._connection.aclose()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._api.stop()

    # Server synchronisation ---------------------------------------------------

    def _on_connection_event(self, event: ConnectionEvent) -> None:
        if isinstance(event, StateChanged):
            self._server_changed(event.state)
        elif isinstance(event, ConnectivityChanged):
            self._emit(event)

    def _server_changed(self, remote_state: RemoteState) -> None:
        self._set_device_active(remote_state.device_active)
        if remote_state.update_id != self._plot_upid:
            self._spawn(self.refresh_plots(remote_state.update_id))

    def _set_device_active(self, active: bool) -> None:
        if self._device_active == active:
            return
        self._device_active = active
        self._emit(DeviceActiveChanged(active))

    async def refresh_plots(self, update_id: Optional[int] = None) -> None:
        """Fetch the plot list, reset the cursor to the newest plot and re-render.

        ``update_id`` is the server update the refresh answers; it is only
        recorded once the list has been applied. A failed fetch asks the
        connection to resynchronise, so the same update is delivered and
        refreshed again after the next successful poll.
        """
        self._refresh_issued += 1
        ticket = self._refresh_issued
        try:
            plots = await self._api.fetch_plots()
        except TransportFailure as exc:
            LOGGER.warning("Plot list refresh failed: %s", exc)
            self._connection.resync()
            return
        if ticket < self._refresh_applied:
            LOGGER.debug("Dropping outdated plot list (ticket %d)", ticket)
            return
        self._refresh_applied = ticket
        if update_id is not None:
            self._plot_upid = update_id
        self._navigator.update(plots)
        self._emit(IndexLabelChanged(self.index_label))
        self._update_image()

    def _update_image(self, suffix: str = "") -> None:
        url = self._navigator.next_image_if_stale(self._api, f"{self._plot_upid}{suffix}")
        if url is not None:
            LOGGER.debug("Image update: %s", url)
            self._emit(ImageChanged(url))

    # Navigation ---------------------------------------------------------------

    def nav_previous(self) -> None:
        self._navigator.navigate(-1)
        self._after_navigation()

    def nav_next(self) -> None:
        self._navigator.navigate(1)
        self._after_navigation()

    def nav_newest(self) -> None:
        self._navigator.jump_to_index(-1)
        self._after_navigation()

    def nav_to(self, plot_id: str) -> None:
        self._navigator.jump_to_id(plot_id)
        self._after_navigation()

    def _after_navigation(self) -> None:
        self._emit(IndexLabelChanged(self.index_label))
        self._update_image()

    async def nav_remove(self) -> None:
        """Remove the selected plot on the server."""
        plot_id = self._navigator.current_id()
        if plot_id is None:
            return
        await self.remove(plot_id)

    async def remove(self, plot_id: str) -> None:
        try:
            await self._api.remove_plot(plot_id)
        except TransportFailure as exc:
            LOGGER.warning("Removing plot %s failed: %s", plot_id, exc)
        await self.refresh_plots()

    async def nav_clear(self) -> None:
        try:
            await self._api.clear()
        except TransportFailure as exc:
            LOGGER.warning("Clearing plots failed: %s", exc)
        await self.refresh_plots()

    # Zoom and size ------------------------------------------------------------

    def zoom_in(self) -> None:
        if self._scale - self._scale_step > MIN_SCALE:
            self._scale -= self._scale_step
        self._after_zoom()

    def zoom_out(self) -> None:
        self._scale += self._scale_step
        self._after_zoom()

    def zoom_reset(self) -> None:
        self._scale = self._scale_default
        self._after_zoom()

    def _after_zoom(self) -> None:
        self._emit(ZoomLabelChanged(self.zoom_label))
        self._apply_viewport()

    def resize(self, width: float, height: float) -> None:
        """Record the displayed element size and re-render if needed."""
        self._element_size = (width, height)
        self._apply_viewport()

    def resize_throttled(self, width: float, height: float) -> None:
        """Coalesce bursts of resize notifications into one resize after a cooldown."""
        self._pending_size = (width, height)
        if self._resize_handle is not None:
            return
        loop = self._loop or asyncio.get_running_loop()
        self._resize_handle = loop.call_later(self._resize_cooldown_s, self._flush_resize)

    def _flush_resize(self) -> None:
        self._resize_handle = None
        if self._pending_size is None:
            return
        width, height = self._pending_size
        self._pending_size = None
        self.resize(width, height)

    def _apply_viewport(self) -> None:
        if self._element_size is None:
            return
        width, height = self._element_size
        self._navigator.resize_viewport(width * self._scale, height * self._scale)
        self._update_image()

    def refresh_visible(self) -> None:
        """Request the current image again, bypassing caches; used when the view reappears."""
        self._navigator.invalidate()
        self._update_image(VISIBILITY_SUFFIX)

    # Internal -----------------------------------------------------------------

    def _emit(self, event: ViewerEvent) -> None:
        self._events.emit(event)

    def _spawn(self, coro: Coroutine[object, object, None]) -> None:
        loop = self._loop or asyncio.get_running_loop()
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


__all__ = ["COOLDOWN_RESIZE_S", "MIN_SCALE", "PlotViewer", "SCALE_DEFAULT"]

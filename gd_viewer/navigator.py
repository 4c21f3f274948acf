"""Plot cursor: selection within the plot history and image staleness."""

from __future__ import annotations

from typing import Optional, Protocol, Tuple

from .state import PlotList, PlotRef

NO_PLOT_IMAGE = "./plot-none.svg"

SIZE_EPSILON = 0.1

# Marks that the empty-history placeholder is what was rendered last.
_PLACEHOLDER_ID = object()


class ImageUrlBuilder(Protocol):
    def plot_image_url(
        self,
        plot_id: Optional[str] = None,
        *,
        index: Optional[int] = None,
        width: Optional[float] = None,
        height: Optional[float] = None,
        cache_buster: Optional[str] = None,
    ) -> str:
        ...


class PlotNavigator:
    """Tracks the known plots, the selected one, and what was rendered last."""

    def __init__(self) -> None:
        self._plots: Tuple[PlotRef, ...] = ()
        self._index = -1
        self._width = 0.0
        self._height = 0.0
        self._last_id: object = None
        self._last_width = 0.0
        self._last_height = 0.0

    def __len__(self) -> int:
        return len(self._plots)

    @property
    def plots(self) -> Tuple[PlotRef, ...]:
        return self._plots

    @property
    def index(self) -> int:
        """Selected position, or -1 when the history is empty."""
        return self._index

    @property
    def viewport(self) -> Tuple[float, float]:
        return self._width, self._height

    def update(self, plot_list: PlotList) -> None:
        """Replace the history and select the newest plot.

        A non-empty update always makes the next staleness check return a URL:
        the server may have redrawn a plot in place without changing its id.
        """
        self._plots = tuple(plot_list.plots)
        self._index = len(self._plots) - 1
        if self._plots:
            self._last_id = None

    def navigate(self, offset: int) -> None:
        if not self._plots:
            return
        self._index = (self._index + offset) % len(self._plots)

    def jump_to_index(self, index: int) -> None:
        """Select ``index`` modulo the history length, so -1 is the newest plot."""
        if not self._plots:
            return
        self._index = index % len(self._plots)

    def jump_to_id(self, plot_id: str) -> None:
        for idx, plot in enumerate(self._plots):
            if plot.id == plot_id:
                self._index = idx
                return

    def resize_viewport(self, width: float, height: float) -> None:
        """Record the requested render size; zoom must already be applied."""
        self._width = width
        self._height = height

    def next_image_if_stale(
        self,
        api: ImageUrlBuilder,
        cache_buster: Optional[str] = None,
    ) -> Optional[str]:
        """Return an image URL only when the selection or viewport changed.

        With an empty history the ``NO_PLOT_IMAGE`` placeholder is returned
        once; later calls return ``None`` until plots arrive. When a value is
        returned it is recorded as the last rendered image.
        """
        if not self._plots:
            if self._last_id is _PLACEHOLDER_ID:
                return None
            self._last_id = _PLACEHOLDER_ID
            return NO_PLOT_IMAGE

        plot_id = self._plots[self._index].id
        if (
            self._last_id == plot_id
            and abs(self._last_width - self._width) <= SIZE_EPSILON
            and abs(self._last_height - self._height) <= SIZE_EPSILON
        ):
            return None
        self._last_id = plot_id
        self._last_width = self._width
        self._last_height = self._height
        return api.plot_image_url(
            plot_id,
            width=self._width,
            height=self._height,
            cache_buster=cache_buster,
        )

    def invalidate(self) -> None:
        """Forget what was rendered so the next staleness check returns a URL."""
        self._last_id = None

    def current_id(self) -> Optional[str]:
        if not self._plots:
            return None
        return self._plots[self._index].id

    def position_label(self) -> str:
        if not self._plots:
            return "0/0"
        return f"{self._index + 1}/{len(self._plots)}"


__all__ = ["ImageUrlBuilder", "NO_PLOT_IMAGE", "PlotNavigator", "SIZE_EPSILON"]

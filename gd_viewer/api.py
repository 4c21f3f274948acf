"""HTTP and push-channel client for a remote graphics device server."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple
from urllib.parse import urlencode

import aiohttp
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosedError, WebSocketException

from .errors import ChannelError, TransportFailure
from .state import PlotList, RemoteState

LOGGER = logging.getLogger(__name__)

TOKEN_HEADER = "X-HTTPGD-TOKEN"


class PushChannel:
    """One push-channel connection; iterate it to receive raw text messages."""

    def __init__(self, url: str, headers: Dict[str, str]) -> None:
        self._url = url
        self._headers = headers
        self._connection: Optional[ClientConnection] = None

    async def __aenter__(self) -> "PushChannel":
        try:
            self._connection = await connect(
                self._url,
                additional_headers=self._headers or None,
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as exc:
            raise ChannelError(f"Could not open push channel {self._url}: {exc}") from exc
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    def __aiter__(self) -> AsyncIterator[str]:
        return self._messages()

    async def _messages(self) -> AsyncIterator[str]:
        if self._connection is None:
            raise ChannelError("Push channel is not open")
        try:
            async for message in self._connection:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                yield message
        except ConnectionClosedError as exc:
            raise ChannelError(f"Push channel closed abnormally: {exc}") from exc


class GdApi:
    """Thin async client for the /state, /plots, /svg, /remove and /clear endpoints."""

    def __init__(
        self,
        host: str,
        token: Optional[str] = None,
        tls: bool = False,
        request_timeout_s: float = 5.0,
    ) -> None:
        self._host = host
        self._token = token or None
        self._http = ("https://" if tls else "http://") + host
        self._ws = ("wss://" if tls else "ws://") + host
        self._headers: Dict[str, str] = {}
        if self._token:
            self._headers[TOKEN_HEADER] = self._token
        self._timeout = aiohttp.ClientTimeout(total=request_timeout_s)
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> None:
        """Create the HTTP session."""
        self._ensure_session()

    async def stop(self) -> None:
        """Close the HTTP session."""
        if self._session is None:
            return
        await self._session.close()
        self._session = None

    @property
    def host(self) -> str:
        return self._host

    @property
    def http_base(self) -> str:
        return self._http

    @property
    def push_url(self) -> str:
        return self._ws

    # Queries ------------------------------------------------------------------

    async def fetch_state(self) -> RemoteState:
        raw = await self._get_json("/state")
        try:
            return RemoteState.from_payload(raw)
        except ValueError as exc:
            raise TransportFailure(self._http + "/state", str(exc)) from exc

    async def fetch_plots(self) -> PlotList:
        raw = await self._get_json("/plots")
        try:
            return PlotList.from_payload(raw)
        except ValueError as exc:
            raise TransportFailure(self._http + "/plots", str(exc)) from exc

    def plot_image_url(
        self,
        plot_id: Optional[str] = None,
        *,
        index: Optional[int] = None,
        width: Optional[float] = None,
        height: Optional[float] = None,
        cache_buster: Optional[str] = None,
    ) -> str:
        """Return the image URL for a plot, addressed by id or history index.

        The credential travels as a ``token`` query parameter because image
        consumers cannot attach request headers.
        """
        if (plot_id is None) == (index is None):
            raise ValueError("plot_image_url needs exactly one of plot_id or index")
        params: List[Tuple[str, str]] = []
        if width:
            params.append(("width", str(_round_half_up(width))))
        if height:
            params.append(("height", str(_round_half_up(height))))
        if self._token:
            params.append(("token", self._token))
        if cache_buster:
            params.append(("c", cache_buster))
        if plot_id is not None:
            params.append(("id", plot_id))
        else:
            params.append(("index", str(index)))
        return f"{self._http}/svg?{urlencode(params)}"

    # Mutations ----------------------------------------------------------------

    async def remove_plot(self, plot_id: str) -> bool:
        """Remove one plot by id. Returns False when the server does not know it."""
        return await self._get_mutation("/remove", [("id", plot_id)])

    async def remove_index(self, index: int) -> bool:
        return await self._get_mutation("/remove", [("index", str(index))])

    async def clear(self) -> bool:
        return await self._get_mutation("/clear")

    # Push channel -------------------------------------------------------------

    def open_push_channel(self) -> PushChannel:
        return PushChannel(self._ws, dict(self._headers))

    # Internal -----------------------------------------------------------------

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            LOGGER.debug("HTTP session opened for %s", self._http)
        return self._session

    async def _get_json(self, path: str) -> Any:
        url = self._http + path
        session = self._ensure_session()
        try:
            async with session.get(url, headers=self._headers) as resp:
                if resp.status != 200:
                    raise TransportFailure(url, resp.reason or "bad status", status=resp.status)
                return await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise TransportFailure(url, str(exc) or type(exc).__name__) from exc

    async def _get_mutation(
        self,
        path: str,
        params: Optional[List[Tuple[str, str]]] = None,
    ) -> bool:
        url = self._http + path
        if params:
            url = f"{url}?{urlencode(params)}"
        session = self._ensure_session()
        try:
            async with session.get(url, headers=self._headers) as resp:
                if resp.status == 404:
                    LOGGER.debug("Nothing to mutate at %s", url)
                    return False
                if resp.status >= 400:
                    raise TransportFailure(url, resp.reason or "bad status", status=resp.status)
                return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportFailure(url, str(exc) or type(exc).__name__) from exc


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


__all__ = ["GdApi", "PushChannel", "TOKEN_HEADER"]

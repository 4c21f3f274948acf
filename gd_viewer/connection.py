"""Connection supervisor: push channel, fast polling and slow polling."""

from __future__ import annotations

import asyncio
import logging
from time import monotonic
from typing import (
    AsyncContextManager,
    AsyncIterator,
    Callable,
    Coroutine,
    Optional,
    Protocol,
    Set,
)

from .errors import ChannelError, MalformedPushMessage, TransportFailure
from .events import EventHub
from .state import (
    ConnectionEvent,
    ConnectionMode,
    ConnectivityChanged,
    ModeChanged,
    RemoteState,
    StateChanged,
)

LOGGER = logging.getLogger(__name__)

INTERVAL_POLL_S = 0.5
INTERVAL_POLL_SLOW_S = 5.0

Listener = Callable[[ConnectionEvent], None]


class StateTransport(Protocol):
    """Subset of the GdApi interface the supervisor depends on."""

    async def fetch_state(self) -> RemoteState:
        ...

    def open_push_channel(self) -> AsyncContextManager[AsyncIterator[str]]:
        ...


class ConnectionSupervisor:
    """Keeps one connection mode alive and reports deduplicated state changes.

    Modes degrade from the push channel to slow polling on any failure and
    climb back to the push channel after a successful slow poll. Every mode
    activation gets a new generation number; completions from an older
    generation are dropped, so a torn-down timer or socket can never change
    the current mode.

    All methods must be called from the event loop thread.
    """

    def __init__(
        self,
        transport: StateTransport,
        *,
        use_push: bool = True,
        fast_interval_s: float = INTERVAL_POLL_S,
        slow_interval_s: float = INTERVAL_POLL_SLOW_S,
        upgrade_cooldown_s: float = 0.0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        if fast_interval_s <= 0 or slow_interval_s <= 0:
            raise ValueError("poll intervals must be greater than zero")
        self._transport = transport
        self._use_push = use_push
        self._fast_interval_s = fast_interval_s
        self._slow_interval_s = slow_interval_s
        self._upgrade_cooldown_s = upgrade_cooldown_s
        self._loop = loop
        self._clock = clock

        self._mode = ConnectionMode.CLOSED
        self._generation = 0
        self._connected = False
        self._paused = False
        self._last_state: Optional[RemoteState] = None
        self._last_upgrade_at: Optional[float] = None

        self._timer_task: Optional[asyncio.Task[None]] = None
        self._channel_task: Optional[asyncio.Task[None]] = None
        self._queries: Set[asyncio.Task[None]] = set()
        self._events: EventHub[ConnectionEvent] = EventHub()

    # Public API ---------------------------------------------------------------

    @property
    def mode(self) -> ConnectionMode:
        return self._mode

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def last_state(self) -> Optional[RemoteState]:
        return self._last_state

    @property
    def paused(self) -> bool:
        return self._paused

    @paused.setter
    def paused(self, value: bool) -> None:
        """While paused, poll ticks keep running but issue no queries."""
        self._paused = bool(value)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for connection events; returns an unsubscribe callable."""
        return self._events.subscribe(listener)

    def open(self) -> None:
        if self._mode is not ConnectionMode.CLOSED:
            return
        self._start(ConnectionMode.PUSHED)

    def close(self) -> None:
        if self._mode is ConnectionMode.CLOSED:
            return
        self._start(ConnectionMode.CLOSED)
        for task in list(self._queries):
            _cancel(task)

    def resync(self) -> None:
        """Forget the last state and fall back to slow polling.

        The next successful query delivers a ``StateChanged`` again even if
        the server state did not move. No-op while closed.
        """
        if self._mode is ConnectionMode.CLOSED:
            return
        LOGGER.info("Resynchronising with the server")
        self._last_state = None
        self._start(ConnectionMode.SLOW_POLL)

    async def aclose(self) -> None:
        """Close and wait until every background task has finished."""
        pending = [
            task
            for task in (self._timer_task, self._channel_task, *self._queries)
            if task is not None
        ]
        self.close()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # Mode transitions ---------------------------------------------------------

    def _start(self, target: ConnectionMode) -> None:
        if target is ConnectionMode.PUSHED and not self._use_push:
            target = ConnectionMode.FAST_POLL
        if target is self._mode:
            return

        self._teardown()
        self._generation += 1
        generation = self._generation
        self._mode = target
        LOGGER.info("Connection mode changed to %s", target.value)

        if target is ConnectionMode.FAST_POLL:
            self._timer_task = self._spawn(self._run_timer(generation, self._fast_interval_s))
        elif target is ConnectionMode.SLOW_POLL:
            self._timer_task = self._spawn(self._run_timer(generation, self._slow_interval_s))
        elif target is ConnectionMode.PUSHED:
            self._last_upgrade_at = self._clock()
            # Seed the state before the channel delivers its first push.
            self._issue_query(generation)
            self._channel_task = self._spawn(self._run_push_channel(generation))

        self._emit(ModeChanged(target))

    def _teardown(self) -> None:
        _cancel(self._timer_task)
        _cancel(self._channel_task)
        self._timer_task = None
        self._channel_task = None

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    def _may_upgrade(self) -> bool:
        if not self._use_push or self._upgrade_cooldown_s <= 0:
            return True
        if self._last_upgrade_at is None:
            return True
        return self._clock() - self._last_upgrade_at >= self._upgrade_cooldown_s

    # Polling ------------------------------------------------------------------

    async def _run_timer(self, generation: int, interval_s: float) -> None:
        while self._is_current(generation):
            await asyncio.sleep(interval_s)
            if not self._is_current(generation):
                return
            if self._paused:
                continue
            self._issue_query(generation)

    def _issue_query(self, generation: int) -> None:
        task = self._spawn(self._query_state(generation))
        self._queries.add(task)
        task.add_done_callback(self._queries.discard)

    async def _query_state(self, generation: int) -> None:
        try:
            remote_state = await self._transport.fetch_state()
        except TransportFailure as exc:
            if not self._is_current(generation):
                LOGGER.debug("Ignoring failure from superseded generation %d", generation)
                return
            if self._connected:
                LOGGER.warning("State query failed: %s", exc)
            else:
                LOGGER.debug("State query failed: %s", exc)
            self._set_connected(False)
            self._start(ConnectionMode.SLOW_POLL)
            return

        if not self._is_current(generation):
            return
        self._set_connected(True)
        if not self._paused:
            self._check_state(remote_state)
        if self._mode is ConnectionMode.SLOW_POLL and self._may_upgrade():
            self._start(ConnectionMode.PUSHED)

    # Push channel -------------------------------------------------------------

    async def _run_push_channel(self, generation: int) -> None:
        try:
            async with self._transport.open_push_channel() as channel:
                if not self._is_current(generation):
                    return
                LOGGER.info("Push channel opened")
                self._set_connected(True)
                async for message in channel:
                    if not self._is_current(generation):
                        return
                    self._on_push_message(message)
            reason = "closed by server"
        except ChannelError as exc:
            reason = str(exc)

        if not self._is_current(generation):
            return
        LOGGER.info("Push channel lost: %s", reason)
        self._set_connected(False)
        self._start(ConnectionMode.SLOW_POLL)

    def _on_push_message(self, message: str) -> None:
        try:
            remote_state = RemoteState.from_push_message(message)
        except MalformedPushMessage as exc:
            LOGGER.debug("%s", exc)
            return
        self._check_state(remote_state)

    # Change detection ---------------------------------------------------------

    def _set_connected(self, connected: bool) -> None:
        if self._connected == connected:
            return
        self._connected = connected
        LOGGER.info("Server %s", "connected" if connected else "disconnected")
        self._emit(ConnectivityChanged(connected))

    def _check_state(self, remote_state: RemoteState) -> None:
        if self._last_state == remote_state:
            return
        self._last_state = remote_state
        LOGGER.debug("Remote state changed: %s", remote_state)
        self._emit(StateChanged(remote_state))

    def _emit(self, event: ConnectionEvent) -> None:
        self._events.emit(event)

    def _spawn(self, coro: Coroutine[object, object, None]) -> "asyncio.Task[None]":
        loop = self._loop or asyncio.get_running_loop()
        return loop.create_task(coro)


def _cancel(task: Optional["asyncio.Task[None]"]) -> None:
    if task is None or task.done():
        return
    try:
        if task is asyncio.current_task():
            return
    except RuntimeError:
        pass
    task.cancel()


__all__ = [
    "INTERVAL_POLL_S",
    "INTERVAL_POLL_SLOW_S",
    "ConnectionSupervisor",
    "Listener",
    "StateTransport",
]

"""Fetch coordination: cancellation, trailing debounce and fetch state.

All mutation of ``FetchState`` happens on the event loop thread. Each call
to ``trigger`` starts a new generation; a cycle only writes state when its
generation is still the current one, so a slow early response can never
overwrite a later one, whatever order the responses arrive in.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from . import config
from .adapter import to_display_entities
from .http import TransportError
from .models import (
    STATUS_ERROR,
    STATUS_IDLE,
    STATUS_LOADING,
    STATUS_SUCCESS,
    FetchState,
    SourceQuery,
    UserLocation,
)

logger = logging.getLogger(__name__)

Fetch = Callable[[Optional[SourceQuery]], Awaitable[List[Dict[str, Any]]]]
StateListener = Callable[[FetchState], None]

DEFAULT_ERROR_MESSAGE = "Failed to fetch businesses"


class DebounceTimer:
    """Trailing debounce: ``callback`` runs ``delay`` seconds after the last reset."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def remaining(self) -> float:
        if self._handle is None:
            return 0.0
        return max(0.0, self._handle.when() - asyncio.get_running_loop().time())

    def reset(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        self.callback()


def error_message(exc: BaseException) -> str:
    if isinstance(exc, TransportError):
        return exc.user_message
    return str(exc) or DEFAULT_ERROR_MESSAGE


class FetchController:
    """Owns the single ``FetchState`` for business discovery.

    Error policy: a failed cycle clears ``data`` so the UI never shows stale
    results as if they were current; ``last_updated`` keeps the time of the
    last successful cycle.
    """

    def __init__(
        self,
        fetch: Fetch,
        origin: Optional[UserLocation] = None,
        debounce_seconds: Optional[float] = None,
        on_change: Optional[StateListener] = None,
    ) -> None:
        self._fetch = fetch
        self.origin = origin
        if debounce_seconds is None:
            debounce_seconds = config.DEBOUNCE_SECONDS
        self.debounce_seconds = max(0.0, float(debounce_seconds))
        self._timer: Optional[DebounceTimer] = None
        if self.debounce_seconds > 0:
            self._timer = DebounceTimer(self.debounce_seconds, self._on_debounce_elapsed)
        self._listeners: List[StateListener] = [on_change] if on_change else []
        self._state = FetchState()
        self._settled_status = STATUS_IDLE
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._pending_query: Optional[SourceQuery] = None
        self._last_query: Optional[SourceQuery] = None
        self._refresh_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> FetchState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def last_query(self) -> Optional[SourceQuery]:
        return self._last_query

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def trigger(self, query: Optional[SourceQuery] = None, immediate: bool = False) -> Optional[asyncio.Task]:
        """Begin a new fetch cycle, superseding any outstanding one.

        With a debounce configured the fetch starts once triggers have been
        quiet for the delay and None is returned; otherwise the cycle task
        is returned.
        """
        self._last_query = query
        self._supersede()
        self._mark_loading()
        if immediate or self._timer is None:
            if self._timer is not None:
                self._timer.cancel()
            return self._start(query)
        self._pending_query = query
        self._timer.reset()
        return None

    def refetch(self) -> asyncio.Task:
        return self.trigger(self._last_query, immediate=True)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._supersede()
        if self._state.loading:
            self._set_state(replace(self._state, loading=False, status=self._settled_status))

    async def wait(self) -> FetchState:
        """Wait until no debounce is pending and the current cycle has settled."""
        while True:
            if self._timer is not None and self._timer.pending:
                await asyncio.sleep(self._timer.remaining())
                continue
            task = self._task
            if task is None or task.done():
                return self._state
            await asyncio.wait({task})

    def start_auto_refresh(self, interval: Optional[float] = None) -> None:
        if interval is None:
            interval = config.AUTO_REFRESH_SECONDS
        self.stop_auto_refresh()
        if interval <= 0:
            return
        self._refresh_task = asyncio.get_running_loop().create_task(self._auto_refresh(interval))

    def stop_auto_refresh(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            self._refresh_task = None

    def close(self) -> None:
        self.stop_auto_refresh()
        self.cancel()

    async def _auto_refresh(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            logger.debug("Auto-refresh after %.1fs", interval)
            self.refetch()

    def _supersede(self) -> None:
        self._generation += 1
        task = self._task
        self._task = None
        if task is not None and not task.done():
            logger.debug("Cancelling superseded fetch cycle")
            task.cancel()

    def _mark_loading(self) -> None:
        if not self._state.loading:
            self._set_state(replace(self._state, loading=True, status=STATUS_LOADING))

    def _on_debounce_elapsed(self) -> None:
        self._start(self._pending_query)

    def _start(self, query: Optional[SourceQuery]) -> asyncio.Task:
        generation = self._generation
        task = asyncio.get_running_loop().create_task(self._run_cycle(generation, query))
        self._task = task
        return task

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run_cycle(self, generation: int, query: Optional[SourceQuery]) -> None:
        try:
            raws = await self._fetch(query)
            if not self._is_current(generation):
                logger.debug("Discarding result of stale fetch cycle %s", generation)
                return
            raws = raws or []
            entities = to_display_entities(raws, self.origin)
        except asyncio.CancelledError:
            logger.debug("Fetch cycle %s cancelled", generation)
            raise
        except Exception as exc:
            if not self._is_current(generation):
                logger.debug("Ignoring failure from stale fetch cycle %s: %s", generation, exc)
                return
            logger.warning("Fetch cycle %s failed: %s", generation, exc)
            self._settled_status = STATUS_ERROR
            self._set_state(
                FetchState(
                    loading=False,
                    error=error_message(exc),
                    data=(),
                    last_updated=self._state.last_updated,
                    status=STATUS_ERROR,
                )
            )
            return

        logger.info(
            "Fetch cycle %s complete: received=%s usable=%s",
            generation,
            len(raws),
            len(entities),
        )
        self._settled_status = STATUS_SUCCESS
        self._set_state(
            FetchState(
                loading=False,
                error=None,
                data=tuple(entities),
                last_updated=datetime.now(timezone.utc),
                status=STATUS_SUCCESS,
            )
        )

    def _set_state(self, state: FetchState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

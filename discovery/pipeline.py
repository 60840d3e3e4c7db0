"""Pipeline orchestration."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from . import config
from .fetcher import Fetch, FetchController
from .filters import apply_filters, rejection_counts
from .models import DisplayBusinessEntity, FetchState, FilterCriteria, SourceQuery, UserLocation
from .state import FilterState, server_query_changed

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    entities: List[DisplayBusinessEntity]
    state: FetchState
    criteria: FilterCriteria
    rejection_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.state.data)


def build_source_query(
    criteria: FilterCriteria,
    origin: Optional[UserLocation] = None,
    per_page: Optional[int] = None,
) -> SourceQuery:
    """Server-side subset of ``criteria``; the rest is filtered client-side."""
    search = (criteria.query or "").strip()
    if len(search) < config.SEARCH_MIN_CHARS:
        search = ""
    lat = lng = None
    if origin is not None and origin.available:
        lat, lng = origin.lat, origin.lng
    return SourceQuery(
        search=search or None,
        lat=lat,
        lng=lng,
        per_page=per_page if per_page is not None else config.DEFAULT_PER_PAGE,
    )


class DiscoveryPipeline:
    """Connects filter criteria to the fetch controller and filter engine.

    Changes to the search text go back to the server (debounced); every
    other criterion is applied client-side to the last fetched entities.
    """

    def __init__(
        self,
        fetch: Fetch,
        filter_state: Optional[FilterState] = None,
        origin: Optional[UserLocation] = None,
        debounce_seconds: Optional[float] = None,
    ) -> None:
        self.filter_state = filter_state or FilterState()
        self.origin = origin
        self.controller = FetchController(fetch, origin=origin, debounce_seconds=debounce_seconds)
        self._view_key: Optional[Tuple[Tuple[DisplayBusinessEntity, ...], FilterCriteria]] = None
        self._view: List[DisplayBusinessEntity] = []
        self._unsubscribe = self.filter_state.subscribe(self._on_criteria_change)

    def start(self) -> Optional[asyncio.Task]:
        query = build_source_query(self.filter_state.criteria, self.origin)
        return self.controller.trigger(query, immediate=True)

    def visible(self) -> List[DisplayBusinessEntity]:
        data = self.controller.state.data
        criteria = self.filter_state.criteria
        key = self._view_key
        if key is not None and key[0] is data and key[1] == criteria:
            return list(self._view)
        self._view = apply_filters(data, criteria)
        self._view_key = (data, criteria)
        return list(self._view)

    def result(self) -> DiscoveryResult:
        state = self.controller.state
        criteria = self.filter_state.criteria
        return DiscoveryResult(
            entities=self.visible(),
            state=state,
            criteria=criteria,
            rejection_counts=rejection_counts(state.data, criteria),
        )

    def close(self) -> None:
        self._unsubscribe()
        self.controller.close()

    def _on_criteria_change(self, old: FilterCriteria, new: FilterCriteria) -> None:
        if server_query_changed(old, new):
            self.controller.trigger(build_source_query(new, self.origin))


def discover(
    fetch: Fetch,
    criteria: Optional[FilterCriteria] = None,
    origin: Optional[UserLocation] = None,
) -> DiscoveryResult:
    """Run one fetch cycle and filter its result. For scripts and the CLI."""

    async def _run() -> DiscoveryResult:
        pipeline = DiscoveryPipeline(fetch, FilterState(criteria), origin=origin, debounce_seconds=0)
        try:
            pipeline.start()
            await pipeline.controller.wait()
            result = pipeline.result()
        finally:
            pipeline.close()
        logger.info(
            "Discovery complete: fetched=%s visible=%s rejections=%s",
            result.total,
            len(result.entities),
            result.rejection_counts,
        )
        return result

    return asyncio.run(_run())

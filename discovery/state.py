"""Filter criteria container consumed by the UI and the pipeline."""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, FrozenSet, Iterable, List

from . import config
from .models import FilterCriteria

logger = logging.getLogger(__name__)

Listener = Callable[[FilterCriteria, FilterCriteria], None]


def _toggle(values: FrozenSet[str], value: str) -> FrozenSet[str]:
    if value in values:
        return values - {value}
    return values | {value}


def server_query_changed(old: FilterCriteria, new: FilterCriteria) -> bool:
    """True when the change affects what the backend should be asked for.

    Only the search text is sent upstream; categories are display labels
    and are matched client-side.
    """
    return old.query.strip() != new.query.strip()


class FilterState:
    """Holds the current criteria; each mutation swaps in a new object."""

    def __init__(self, initial: FilterCriteria | None = None) -> None:
        self._criteria = initial or FilterCriteria()
        self._listeners: List[Listener] = []

    @property
    def criteria(self) -> FilterCriteria:
        return self._criteria

    @property
    def has_active_filters(self) -> bool:
        # Sort order alone does not hide anything.
        unsorted = replace(self._criteria, sort_by=config.SORT_FEATURED)
        return unsorted != FilterCriteria()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def replace(self, criteria: FilterCriteria) -> FilterCriteria:
        old = self._criteria
        if criteria == old:
            return old
        self._criteria = criteria
        logger.debug("Filter criteria changed: %s", criteria)
        for listener in list(self._listeners):
            listener(old, criteria)
        return criteria

    def _update(self, **changes: Any) -> FilterCriteria:
        return self.replace(replace(self._criteria, **changes))

    def set_query(self, query: str) -> FilterCriteria:
        return self._update(query=query or "")

    def toggle_category(self, category: str) -> FilterCriteria:
        return self._update(categories=_toggle(self._criteria.categories, category))

    def set_categories(self, categories: Iterable[str]) -> FilterCriteria:
        return self._update(categories=frozenset(categories))

    def set_min_rating(self, rating: float) -> FilterCriteria:
        return self._update(min_rating=float(rating or 0))

    def set_max_distance(self, band: Any) -> FilterCriteria:
        if band is None or band == "":
            band = config.DISTANCE_ALL
        return self._update(max_distance=str(band))

    def toggle_price_tier(self, token: str) -> FilterCriteria:
        return self._update(price_tiers=_toggle(self._criteria.price_tiers, token))

    def set_open_now(self, open_now: bool) -> FilterCriteria:
        return self._update(open_now=bool(open_now))

    def toggle_feature(self, feature: str) -> FilterCriteria:
        return self._update(features=_toggle(self._criteria.features, feature))

    def set_main_category(self, main_category: str) -> FilterCriteria:
        main_category = (main_category or "").strip().lower() or config.MAIN_CATEGORY_ALL
        return self._update(main_category=main_category)

    def set_sort_by(self, sort_by: str) -> FilterCriteria:
        if sort_by not in config.SORT_MODES:
            raise ValueError(f"Unknown sort mode: {sort_by!r}")
        return self._update(sort_by=sort_by)

    def reset(self) -> FilterCriteria:
        return self.replace(FilterCriteria())

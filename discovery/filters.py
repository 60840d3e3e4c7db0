"""Compound filtering and ranking of display entities."""
from __future__ import annotations

from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from . import config
from .adapter import main_category_for_slug, safe_float
from .models import DisplayBusinessEntity, FilterCriteria

Predicate = Callable[[DisplayBusinessEntity], bool]


def price_tier_from_token(token: str) -> Optional[int]:
    """Map a price-symbol token to its tier by length ("$$" -> 2).

    Characters are not validated; "€€" is tier 2 as well.
    """
    if not isinstance(token, str):
        return None
    stripped = token.strip()
    if not stripped:
        return None
    return len(stripped)


def price_tiers(tokens: Iterable[str]) -> FrozenSet[int]:
    tiers = (price_tier_from_token(t) for t in tokens)
    return frozenset(t for t in tiers if t is not None)


def parse_distance_band(band: object) -> Optional[float]:
    """Numeric ceiling in km, or None when the band means "no restriction"."""
    if band is None:
        return None
    if isinstance(band, str):
        text = band.strip()
        if not text or text.lower() == config.DISTANCE_ALL:
            return None
        text = text.lower().removesuffix("km").strip()
        value = safe_float(text)
    else:
        value = safe_float(band)
    if value is None or value < 0:
        return None
    return value


def build_predicates(criteria: FilterCriteria) -> List[Tuple[str, Predicate]]:
    """Active predicates for ``criteria``, in evaluation order.

    Criteria at their unset sentinel contribute nothing, so an empty list
    means every entity passes.
    """
    if criteria is None:
        raise TypeError("criteria must not be None")

    predicates: List[Tuple[str, Predicate]] = []

    main_category = (criteria.main_category or "").strip().lower()
    if main_category and main_category != config.MAIN_CATEGORY_ALL:
        predicates.append(
            ("main_category", lambda e: main_category_for_slug(e.category_slug) == main_category)
        )

    query = (criteria.query or "").strip().casefold()
    if query:
        predicates.append(("query", lambda e: _matches_text(e, query)))

    if criteria.categories:
        categories = frozenset(criteria.categories)
        predicates.append(("category", lambda e: e.category in categories))

    min_rating = safe_float(criteria.min_rating)
    if min_rating is not None and min_rating > 0:
        predicates.append(("rating", lambda e: e.rating >= min_rating))

    max_distance = parse_distance_band(criteria.max_distance)
    if max_distance is not None:
        predicates.append(("distance", lambda e: e.distance <= max_distance))

    tiers = price_tiers(criteria.price_tiers)
    if tiers:
        predicates.append(("price", lambda e: e.price_range in tiers))

    if criteria.open_now:
        predicates.append(("open_now", lambda e: e.is_open))

    if criteria.features:
        required = frozenset(criteria.features)
        predicates.append(("features", lambda e: required.issubset(e.features)))

    return predicates


def _matches_text(entity: DisplayBusinessEntity, needle: str) -> bool:
    for text in (entity.name, entity.category, entity.address):
        if isinstance(text, str) and needle in text.casefold():
            return True
    return False


def rank_sort_key(entity: DisplayBusinessEntity) -> Tuple[int, float]:
    return (0 if entity.verified else 1, -entity.rating)


def relevance_score(entity: DisplayBusinessEntity) -> float:
    """Blend of rating, review volume, proximity and verification (0-110)."""
    rating_score = entity.rating / config.MAX_RATING * 40
    review_score = min(entity.review_count / 1000 * 30, 30)
    distance_score = max(30 - entity.distance * 10, 0)
    verified_bonus = 10 if entity.verified else 0
    return rating_score + review_score + distance_score + verified_bonus


SORT_KEYS: Dict[str, Callable[[DisplayBusinessEntity], Any]] = {
    config.SORT_FEATURED: rank_sort_key,
    config.SORT_RELEVANCE: lambda e: -relevance_score(e),
    config.SORT_DISTANCE: lambda e: e.distance,
    config.SORT_RATING: lambda e: (-e.rating, -e.review_count),
    config.SORT_PRICE: lambda e: e.price_range,
}


def rank(
    entities: Iterable[DisplayBusinessEntity], sort_by: str = config.SORT_FEATURED
) -> List[DisplayBusinessEntity]:
    # sorted() is stable, equal keys keep input order.
    key = SORT_KEYS.get(sort_by, rank_sort_key)
    return sorted(entities, key=key)


def apply_filters(
    entities: Sequence[DisplayBusinessEntity], criteria: FilterCriteria
) -> List[DisplayBusinessEntity]:
    predicates = build_predicates(criteria)
    kept = [e for e in entities if all(check(e) for _, check in predicates)]
    return rank(kept, criteria.sort_by)


def rejection_counts(
    entities: Sequence[DisplayBusinessEntity], criteria: FilterCriteria
) -> Dict[str, int]:
    """Count dropped entities by the first predicate they fail."""
    counts: Dict[str, int] = {}
    predicates = build_predicates(criteria)
    for entity in entities:
        for name, check in predicates:
            if not check(entity):
                counts[name] = counts.get(name, 0) + 1
                break
    return counts

"""Value types shared by the adapter, filter engine and fetch controller."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional, Tuple

from . import config

STATUS_IDLE = "idle"
STATUS_LOADING = "loading"
STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class DisplayBusinessEntity:
    id: str
    name: str
    category: str
    rating: float
    distance: float
    lat: float
    lng: float
    category_slug: str = ""
    color: str = ""
    icon: str = ""
    image: str = config.PLACEHOLDER_IMAGE
    is_open: bool = True
    price_range: int = config.DEFAULT_PRICE_RANGE
    verified: bool = False
    features: Tuple[str, ...] = ()
    address: str = config.DEFAULT_LOCALITY
    review_count: int = 0
    phone: str = ""
    website: Optional[str] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "rating": self.rating,
            "distance": self.distance,
            "lat": self.lat,
            "lng": self.lng,
            "is_open": self.is_open,
            "price_range": self.price_range,
            "verified": self.verified,
            "features": list(self.features),
            "address": self.address,
            "review_count": self.review_count,
            "phone": self.phone,
            "website": self.website,
            "image": self.image,
        }


@dataclass(frozen=True)
class FilterCriteria:
    """User-selected filter constraints.

    Every field defaults to its "unset" sentinel, so ``FilterCriteria()`` lets
    everything through. Instances are never mutated; use
    ``dataclasses.replace`` (or ``FilterState``) to derive a new one.
    """

    query: str = ""
    categories: FrozenSet[str] = frozenset()
    min_rating: float = 0.0
    max_distance: str = config.DISTANCE_ALL
    price_tiers: FrozenSet[str] = frozenset()
    open_now: bool = False
    features: FrozenSet[str] = frozenset()
    main_category: str = config.MAIN_CATEGORY_ALL
    sort_by: str = config.SORT_FEATURED


@dataclass(frozen=True)
class FetchState:
    loading: bool = False
    error: Optional[str] = None
    data: Tuple[DisplayBusinessEntity, ...] = ()
    last_updated: Optional[datetime] = None
    status: str = STATUS_IDLE


@dataclass(frozen=True)
class UserLocation:
    lat: Optional[float] = None
    lng: Optional[float] = None
    accuracy: Optional[float] = None
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.error is None and self.lat is not None and self.lng is not None


@dataclass(frozen=True)
class SourceQuery:
    """Server-side subset of filtering sent to the businesses endpoint."""

    search: Optional[str] = None
    category: Optional[str] = None
    neighborhood: Optional[str] = None
    rating_min: Optional[float] = None
    price_range: Optional[int] = None
    features: Tuple[str, ...] = field(default_factory=tuple)
    lat: Optional[float] = None
    lng: Optional[float] = None
    page: Optional[int] = None
    per_page: Optional[int] = None

"""Adapter from backend business records to map display entities."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from . import config
from .geo import distance_to_user
from .models import DisplayBusinessEntity, UserLocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CategoryStyle:
    color: str
    icon: str


# Map marker styles by category slug.
CATEGORY_STYLES: Dict[str, CategoryStyle] = {
    # gastronomia
    "cafe": CategoryStyle("#92400E", "☕"),
    "restaurante": CategoryStyle("#F97316", "🍽️"),
    "bar": CategoryStyle("#DC2626", "🍺"),
    "bar-pub": CategoryStyle("#DC2626", "🍺"),
    "panaderia": CategoryStyle("#FCD34D", "🥖"),
    # hospedaje
    "hotel": CategoryStyle("#10B981", "🏨"),
    "hostal": CategoryStyle("#84CC16", "🛏️"),
    "hotel-boutique": CategoryStyle("#10B981", "✨"),
    "cabana": CategoryStyle("#84CC16", "🏕️"),
    # turismo
    "galeria": CategoryStyle("#EC4899", "🖼️"),
    "libreria": CategoryStyle("#3B82F6", "📚"),
    "museo": CategoryStyle("#A855F7", "🏛️"),
    "tour": CategoryStyle("#6366F1", "🎒"),
    "default": CategoryStyle("#6B7280", "📍"),
}

MAIN_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "hospedaje": ("hotel", "hostal", "hotel-boutique", "cabana", "apart-hotel", "lodge"),
    "gastronomia": (
        "cafe", "restaurante", "bar", "bar-pub", "pub", "panaderia",
        "pasteleria", "comida-rapida", "food-truck",
    ),
    "turismo": (
        "galeria", "museo", "tour", "mirador", "parque", "libreria",
        "centro-cultural", "teatro", "cine",
    ),
}
MAIN_CATEGORY_ALL = config.MAIN_CATEGORY_ALL

DROP_NOT_A_RECORD = "not_a_record"
DROP_NO_COORDINATES = "no_coordinates"
DROP_MISSING_ID = "missing_id"
DROP_DUPLICATE = "duplicate_id"

_SLUG_TO_MAIN: Dict[str, str] = {
    slug: main for main, slugs in MAIN_CATEGORIES.items() for slug in slugs
}


def normalize_slug(slug: Any) -> str:
    if not isinstance(slug, str):
        return ""
    return slug.strip().lower()


def get_category_style(slug: Any) -> CategoryStyle:
    return CATEGORY_STYLES.get(normalize_slug(slug)) or CATEGORY_STYLES["default"]


def main_category_for_slug(slug: Any) -> str:
    return _SLUG_TO_MAIN.get(normalize_slug(slug), MAIN_CATEGORY_ALL)


def safe_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(result):
        return None
    return result


def safe_int(value: Any, default: int) -> int:
    number = safe_float(value)
    if number is None:
        return default
    return int(number)


def coerce_rating(value: Any) -> float:
    rating = safe_float(value)
    if rating is None:
        return 0.0
    return max(0.0, min(config.MAX_RATING, rating))


def round_distance(km: float) -> float:
    if km < 1:
        return km
    return round(km * 10) / 10


def extract_coordinates(raw: Dict[str, Any]) -> Tuple[Optional[float], Optional[float]]:
    location = raw.get("location")
    if not isinstance(location, dict):
        return None, None
    lat = location.get("lat")
    if lat is None:
        lat = location.get("latitude")
    lng = location.get("lng")
    if lng is None:
        lng = location.get("lon")
    if lng is None:
        lng = location.get("longitude")
    return safe_float(lat), safe_float(lng)


def has_valid_coordinates(raw: Dict[str, Any]) -> bool:
    # Zero means "unset" here, not a point in the Gulf of Guinea.
    lat, lng = extract_coordinates(raw)
    return bool(lat) and bool(lng)


def _category_fields(raw: Dict[str, Any]) -> Tuple[str, str]:
    category = raw.get("category")
    if isinstance(category, dict):
        name = category.get("name") or ""
        slug = category.get("slug") or name
    elif isinstance(category, str):
        name, slug = category, category
    else:
        name, slug = "", ""
    return (_text(name) or config.DEFAULT_CATEGORY_LABEL), normalize_slug(slug)


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, tuple, set, bool)):
        return ""
    return str(value).strip()


def _features(raw: Dict[str, Any]) -> Tuple[str, ...]:
    features = raw.get("features")
    if isinstance(features, str):
        features = [features]
    if not isinstance(features, (list, tuple, set, frozenset)):
        return ()
    return tuple(text for text in (_text(f) for f in features) if text)


def _price_range(raw: Dict[str, Any]) -> int:
    tier = safe_int(raw.get("price_range"), config.DEFAULT_PRICE_RANGE)
    if tier < config.MIN_PRICE_RANGE or tier > config.MAX_PRICE_RANGE:
        return config.DEFAULT_PRICE_RANGE
    return tier


def _distance(raw: Dict[str, Any], lat: float, lng: float, origin: Optional[UserLocation]) -> float:
    distance = safe_float(raw.get("distance"))
    if distance is None:
        distance = distance_to_user(lat, lng, origin)
    if distance is None or distance < 0:
        distance = 0.0
    return round_distance(distance)


def to_display_entity(
    raw: Dict[str, Any], origin: Optional[UserLocation] = None
) -> Optional[DisplayBusinessEntity]:
    if not isinstance(raw, dict) or not has_valid_coordinates(raw):
        return None
    business_id = _text(raw.get("id"))
    if not business_id:
        return None
    lat, lng = extract_coordinates(raw)
    label, slug = _category_fields(raw)
    style = get_category_style(slug)
    return DisplayBusinessEntity(
        id=business_id,
        name=_text(raw.get("name")),
        category=label,
        category_slug=slug,
        color=style.color,
        icon=style.icon,
        rating=coerce_rating(raw.get("rating")),
        distance=_distance(raw, lat, lng, origin),
        lat=lat,
        lng=lng,
        image=_text(raw.get("cover_image")) or config.PLACEHOLDER_IMAGE,
        is_open=raw.get("is_open") is not False,
        price_range=_price_range(raw),
        verified=bool(raw.get("verified")),
        features=_features(raw),
        address=_text(raw.get("address")) or config.DEFAULT_LOCALITY,
        review_count=max(0, safe_int(raw.get("review_count"), 0)),
        phone=_text(raw.get("phone")),
        website=_text(raw.get("website")) or None,
    )


def to_display_entities(
    raws: Iterable[Dict[str, Any]], origin: Optional[UserLocation] = None
) -> List[DisplayBusinessEntity]:
    entities: List[DisplayBusinessEntity] = []
    seen: Set[str] = set()
    dropped: Dict[str, int] = {}
    for raw in raws:
        entity = to_display_entity(raw, origin)
        if entity is None:
            reason = drop_reason(raw)
            dropped[reason] = dropped.get(reason, 0) + 1
            logger.debug("Dropping business %r: %s", _record_label(raw), reason)
            continue
        if entity.id in seen:
            dropped[DROP_DUPLICATE] = dropped.get(DROP_DUPLICATE, 0) + 1
            continue
        seen.add(entity.id)
        entities.append(entity)
    if dropped:
        logger.info("Adapted %s businesses (dropped=%s)", len(entities), dropped)
    return entities


def drop_reason(raw: Any) -> str:
    """Why ``to_display_entity`` rejects ``raw``."""
    if not isinstance(raw, dict):
        return DROP_NOT_A_RECORD
    if not has_valid_coordinates(raw):
        return DROP_NO_COORDINATES
    return DROP_MISSING_ID


def _record_label(raw: Any) -> Any:
    if isinstance(raw, dict):
        return raw.get("id") or raw.get("name")
    return raw

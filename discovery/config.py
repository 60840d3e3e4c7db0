"""Project configuration.

Loads deployment settings from discovery_config.json when available,
falling back to sensible defaults. Keep API request shapes centralized here.
"""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

_REPO_ROOT = Path(__file__).resolve().parent.parent

# --- API endpoints ---

_DEFAULT_API_URL = "http://localhost:8000/api"

API_URL: str = os.environ.get("DISCOVERY_API_URL", _DEFAULT_API_URL)
BUSINESSES_PATH = "/businesses/"

# --- Display defaults ---

DEFAULT_LOCALITY = "Santiago, Chile"
DEFAULT_CATEGORY_LABEL = "General"
PLACEHOLDER_IMAGE = "/placeholder.svg"
DEFAULT_PRICE_RANGE = 2
MIN_PRICE_RANGE = 1
MAX_PRICE_RANGE = 3
MAX_RATING = 5.0

# --- Filters ---

DISTANCE_ALL = "all"
MAIN_CATEGORY_ALL = "all"

# Sort modes. "featured" is verified first, then rating.
SORT_FEATURED = "featured"
SORT_RELEVANCE = "relevance"
SORT_DISTANCE = "distance"
SORT_RATING = "rating"
SORT_PRICE = "price"
SORT_MODES = (SORT_FEATURED, SORT_RELEVANCE, SORT_DISTANCE, SORT_RATING, SORT_PRICE)
PRICE_SYMBOL = "$"
SEARCH_MIN_CHARS = 2

# --- Fetch controller ---

DEBOUNCE_SECONDS = 0.3
AUTO_REFRESH_SECONDS = 0.0
DEFAULT_PER_PAGE = 100

# --- HTTP ---

HTTP_TIMEOUT_SECONDS = 20
HTTP_RETRY_MAX = 3
HTTP_BACKOFF_BASE = 0.5
HTTP_BACKOFF_MAX = 8.0

# --- Outputs ---

OUTPUT_DIR = "out"


def load_discovery_config(path: Optional[str] = None) -> bool:
    """Load deployment settings from a JSON file.

    Updates module-level globals with values from the config file.
    Returns True if config was loaded, False if file not found.
    """
    if path is None:
        path = str(_REPO_ROOT / "discovery_config.json")

    config_path = Path(path)
    if not config_path.exists():
        return False

    with open(config_path, "r", encoding="utf-8") as f:
        data: Dict[str, Any] = json.load(f)

    globals_ref = globals()

    api_url = data.get("api_url")
    if api_url and not os.environ.get("DISCOVERY_API_URL"):
        globals_ref["API_URL"] = str(api_url).rstrip("/")

    locality = data.get("default_locality")
    if locality:
        globals_ref["DEFAULT_LOCALITY"] = str(locality)

    placeholder = data.get("placeholder_image")
    if placeholder:
        globals_ref["PLACEHOLDER_IMAGE"] = str(placeholder)

    fetch = data.get("fetch", {})
    if "debounce_seconds" in fetch:
        globals_ref["DEBOUNCE_SECONDS"] = max(0.0, float(fetch["debounce_seconds"]))
    if "auto_refresh_seconds" in fetch:
        globals_ref["AUTO_REFRESH_SECONDS"] = max(0.0, float(fetch["auto_refresh_seconds"]))
    if "per_page" in fetch:
        globals_ref["DEFAULT_PER_PAGE"] = int(fetch["per_page"])

    http = data.get("http", {})
    if "timeout_seconds" in http:
        globals_ref["HTTP_TIMEOUT_SECONDS"] = int(http["timeout_seconds"])
    if "retry_max" in http:
        globals_ref["HTTP_RETRY_MAX"] = max(1, int(http["retry_max"]))

    return True

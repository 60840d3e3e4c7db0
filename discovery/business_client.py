"""Businesses API client and response parsing."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from . import config
from .http import HttpClient
from .models import SourceQuery

logger = logging.getLogger(__name__)


class BusinessClient:
    def __init__(self, http_client: HttpClient, api_url: Optional[str] = None) -> None:
        self.http = http_client
        self.api_url = (api_url or config.API_URL).rstrip("/")

    @property
    def businesses_url(self) -> str:
        return f"{self.api_url}{config.BUSINESSES_PATH}"

    def list_businesses(self, query: Optional[SourceQuery] = None) -> List[Dict[str, Any]]:
        params = build_query_params(query)
        logger.info("Fetching businesses from %s params=%s", self.businesses_url, params)
        response = self.http.get_json(self.businesses_url, params=params or None)
        records = parse_businesses_response(response)
        logger.info("Received %s businesses", len(records))
        return records

    def search_businesses(self, text: str) -> List[Dict[str, Any]]:
        text = (text or "").strip()
        if not text:
            return []
        return self.list_businesses(SourceQuery(search=text))

    def get_business_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        url = f"{self.businesses_url}{slug}/"
        response = self.http.get_json(url, allow_not_found=True)
        if response is None:
            return None
        if isinstance(response, dict) and response.get("success") and isinstance(response.get("data"), dict):
            return response["data"]
        return response if isinstance(response, dict) else None


class AsyncBusinessSource:
    """Awaitable data source for the fetch controller.

    The blocking request runs in a worker thread; cancelling the awaiting
    task abandons the result without touching the caller's state.
    """

    def __init__(self, client: BusinessClient) -> None:
        self.client = client

    async def __call__(self, query: Optional[SourceQuery] = None) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self.client.list_businesses, query)


def build_query_params(query: Optional[SourceQuery]) -> Dict[str, str]:
    if query is None:
        return {}
    params: Dict[str, str] = {}
    if query.category:
        params["category"] = query.category
    if query.neighborhood:
        params["neighborhood"] = query.neighborhood
    if query.rating_min:
        params["rating_min"] = str(query.rating_min)
    if query.price_range:
        params["price_range"] = str(query.price_range)
    if query.features:
        params["features"] = ",".join(query.features)
    if query.search:
        params["search"] = query.search
    if query.lat:
        params["lat"] = str(query.lat)
    if query.lng:
        params["lng"] = str(query.lng)
    if query.page:
        params["page"] = str(query.page)
    if query.per_page:
        params["per_page"] = str(query.per_page)
    return params


def parse_businesses_response(response: Any) -> List[Dict[str, Any]]:
    """Extract business records from any of the shapes the backend returns."""
    if isinstance(response, list):
        records = response
    elif isinstance(response, dict):
        data = response.get("data")
        if isinstance(data, dict) and isinstance(data.get("results"), list):
            records = data["results"]
        elif isinstance(data, list):
            records = data
        elif isinstance(response.get("results"), list):
            records = response["results"]
        else:
            logger.warning("Unexpected businesses response format: keys=%s", sorted(response))
            return []
    else:
        logger.warning("Unexpected businesses response type: %s", type(response).__name__)
        return []
    return [r for r in records if isinstance(r, dict)]

"""
Perenual plant API client.

Free tier limit: 100 requests/day.
Rate limit responses are signalled by HTTP 429 or an upgrade-required JSON body.
Images behind the paywall come back as an "upgrade_access" placeholder and are
dropped.
"""
import logging
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.errors import SourceUnavailable
from app.services.sources import SourceClient, compact, split_binomial

logger = logging.getLogger(__name__)

_UPGRADE_MARKER = "Upgrade Plan To Premium Access"
_PLACEHOLDER_IMAGE = "upgrade_access"


class RateLimitError(SourceUnavailable):
    """Raised when Perenual signals the daily request quota is exhausted."""

    def __init__(self, detail: str):
        super().__init__("perenual", detail)


def _check_rate_limited(data: Any) -> None:
    """Raise RateLimitError if the response body contains an upgrade notice."""
    if isinstance(data, dict):
        error = data.get("error", "")
        if _UPGRADE_MARKER in str(error):
            raise RateLimitError(str(error))


def _image_urls(default_image: Any) -> list[str]:
    if not isinstance(default_image, dict):
        return []
    urls = []
    for key in ("original_url", "regular_url", "medium_url"):
        url = default_image.get(key)
        if url and _PLACEHOLDER_IMAGE not in url and url not in urls:
            urls.append(url)
    return urls[:1]


def _hardiness(value: Any) -> Optional[str]:
    """{'min': '5', 'max': '9'} -> '5-9'."""
    if not isinstance(value, dict):
        return None
    low, high = value.get("min"), value.get("max")
    if low and high and low != high:
        return f"{low}-{high}"
    return low or high or None


def _edible(data: dict) -> Optional[bool]:
    flags = [data.get("edible_fruit"), data.get("edible_leaf")]
    if any(flag is True for flag in flags):
        return True
    if all(flag is False for flag in flags):
        return False
    return None


def _joined(value: Any) -> Optional[str]:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value if v) or None
    return value


def flatten_species(species: dict, detail: Optional[dict] = None) -> dict[str, Any]:
    """Flatten a species-list entry (plus optional detail body) into raw fields."""
    data = {**species, **(detail or {})}
    genus, epithet = split_binomial(data.get("scientific_name"))
    return compact({
        "common_name": data.get("common_name"),
        "scientific_name": data.get("scientific_name"),
        "genus": data.get("genus") or genus,
        "species": epithet,
        "family": data.get("family"),
        "type": data.get("type") or data.get("cycle"),
        "growth_rate": data.get("growth_rate"),
        "hardiness_zones": _hardiness(data.get("hardiness")),
        "height": _joined(data.get("dimension")),
        "soils": data.get("soil"),
        "pollinators": data.get("attracts"),
        "habitat_range": _joined(data.get("origin")),
        "flower": data.get("flower_color"),
        "leaf": _joined(data.get("leaf_color")),
        "ripen": data.get("fruiting_season") or data.get("harvest_season"),
        "reproduction": _joined(data.get("propagation")),
        "description": data.get("description"),
        "images": _image_urls(data.get("default_image")),
        "edibility": _edible(data),
        "medicinal": data.get("medicinal"),
        "source": "perenual",
    })


class PerenualClient(SourceClient):
    name = "perenual"
    record_source = "perenual"

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key if api_key is not None else settings.PERENUAL_API_KEY
        self.base_url = (base_url or settings.PERENUAL_BASE_URL).rstrip("/")

    async def _get(self, client: httpx.AsyncClient, path: str, **params) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug("GET %s", url)
        response = await client.get(url, params={"key": self.api_key, **params})
        if response.status_code == 429:
            raise RateLimitError("HTTP 429 from Perenual")
        self._check(response)
        data = response.json()
        _check_rate_limited(data)
        return data

    async def fetch_species_list(self, page: int = 1, query: Optional[str] = None) -> dict:
        """
        Fetch one page of the species list.

        Returns the full parsed JSON body, which includes:
          data, current_page, last_page, total, per_page
        Raises SourceUnavailable on failure; used by the batch import.
        """
        params: dict[str, Any] = {"page": page}
        if query:
            params["q"] = query
        async with self._client() as client:
            return await self._get(client, "/species-list", **params)

    async def _search(self, query: str) -> Optional[dict[str, Any]]:
        if not self.api_key:
            logger.debug("perenual: PERENUAL_API_KEY not configured, skipping")
            return None
        async with self._client() as client:
            listing = await self._get(client, "/species-list", q=query)
            hits = listing.get("data") or []
            if not hits:
                return None
            species = hits[0]
            detail = None
            if species.get("id") is not None:
                try:
                    detail = await self._get(client, f"/species/details/{species['id']}")
                except SourceUnavailable as exc:
                    logger.info("perenual: detail for %s unavailable (%s), using list entry", species["id"], exc)
        return flatten_species(species, detail)

"""
Trefle plant API client.

Auth via a ``token`` query parameter. Search hits carry names, taxonomy and a
single image; nothing descriptive, so Trefle mostly fills identity gaps.
"""
import logging
from typing import Any, Optional

from app.core.config import settings
from app.services.sources import SourceClient, compact, split_binomial

logger = logging.getLogger(__name__)


def flatten_plant(plant: dict) -> dict[str, Any]:
    """Flatten a Trefle plant/species entry into raw fields."""
    genus, epithet = split_binomial(plant.get("scientific_name"))
    return compact({
        "common_name": plant.get("common_name"),
        "scientific_name": plant.get("scientific_name"),
        "genus": plant.get("genus") or genus,
        "species": epithet,
        "family": plant.get("family") or plant.get("family_common_name"),
        "image_url": plant.get("image_url"),
        "source": "trefle",
    })


class TrefleClient(SourceClient):
    name = "trefle"
    record_source = "trefle"

    def __init__(self, token: Optional[str] = None, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.token = token if token is not None else settings.TREFLE_TOKEN
        self.base_url = (base_url or settings.TREFLE_BASE_URL).rstrip("/")

    async def fetch_plants_page(self, page: int = 1, query: Optional[str] = None) -> dict:
        """GET /plants (or /plants/search when ``query`` is given). Raises on failure."""
        path = "/plants/search" if query else "/plants"
        params: dict[str, Any] = {"token": self.token, "page": page}
        if query:
            params["q"] = query
        async with self._client() as client:
            response = await client.get(f"{self.base_url}{path}", params=params)
        self._check(response)
        return response.json()

    async def _search(self, query: str) -> Optional[dict[str, Any]]:
        if not self.token:
            logger.debug("trefle: TREFLE_TOKEN not configured, skipping")
            return None
        body = await self.fetch_plants_page(query=query)
        hits = body.get("data") or []
        if not hits:
            return None
        return flatten_plant(hits[0])

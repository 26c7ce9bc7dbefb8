"""
Wikipedia clients.

WikipediaSummaryClient reads the REST page summary for an exact title (the
scientific name usually resolves). WikipediaSearchClient is the last resort of
the enrichment chain: it runs a full-text search on the common name and reads
the summary of the best hit.
"""
import logging
from typing import Any, Optional
from urllib.parse import quote

import httpx

from app.core.config import settings
from app.schemas.plant import PlantRecord
from app.services.sources import SourceClient, compact

logger = logging.getLogger(__name__)


def flatten_summary(summary: dict) -> dict[str, Any]:
    images = []
    for key in ("originalimage", "thumbnail"):
        source = (summary.get(key) or {}).get("source")
        if source and source not in images:
            images.append(source)
    return compact({
        "description": summary.get("extract"),
        "images": images[:1],
        "source": "wikipedia",
    })


class WikipediaSummaryClient(SourceClient):
    name = "wikipedia"
    record_source = "wikipedia"

    def __init__(self, base_url: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.base_url = (base_url or settings.WIKIPEDIA_BASE_URL).rstrip("/")

    async def _summary(self, client: httpx.AsyncClient, title: str) -> Optional[dict[str, Any]]:
        encoded = quote("_".join(title.split()), safe="")
        response = await client.get(f"{self.base_url}/api/rest_v1/page/summary/{encoded}")
        if response.status_code == 404:
            return None
        self._check(response)
        summary = response.json()
        if summary.get("type") == "disambiguation":
            logger.debug("wikipedia: %r is a disambiguation page", title)
            return None
        return flatten_summary(summary)

    async def _search(self, query: str) -> Optional[dict[str, Any]]:
        async with self._client() as client:
            return await self._summary(client, query)


class WikipediaSearchClient(WikipediaSummaryClient):
    name = "wikipedia_search"

    def query_for(self, record: PlantRecord) -> Optional[str]:
        return record.common_name or record.scientific_name

    async def _search(self, query: str) -> Optional[dict[str, Any]]:
        async with self._client() as client:
            response = await client.get(
                f"{self.base_url}/w/api.php",
                params={
                    "action": "query",
                    "list": "search",
                    "srsearch": query,
                    "srlimit": 1,
                    "format": "json",
                },
            )
            self._check(response)
            hits = (response.json().get("query") or {}).get("search") or []
            if not hits:
                return None
            return await self._summary(client, hits[0]["title"])

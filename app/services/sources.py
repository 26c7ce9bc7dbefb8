"""
Source clients: the external lookups the enrichment chain draws from.

Every client exposes ``search(query) -> dict | None``. The dict is a flat,
partial raw payload whose keys the field normalizer understands; ``None``
means "no contribution". ``search`` never raises: provider errors, timeouts
and malformed bodies are logged and turned into ``None`` here, so the
orchestration can treat every client the same way.

SOURCE_CHAIN_ORDER fixes the order in which the enrichment pipeline consults
the clients.
"""
import logging
from typing import Any, Optional

import httpx

from app.core.config import settings
from app.core.errors import SourceUnavailable
from app.schemas.plant import PlantRecord
from app.services.normalizer import is_empty

logger = logging.getLogger(__name__)

SOURCE_CHAIN_ORDER = ("perenual", "trefle", "wikipedia", "wikipedia_search")


class SourceClient:
    """Base class. Subclasses implement ``_search``."""

    name: str = "source"
    # Value written to PlantRecord.source for this client's contributions.
    record_source: str = "db"

    def __init__(self, timeout: Optional[float] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.timeout = timeout if timeout is not None else settings.SOURCE_TIMEOUT_SECONDS
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"User-Agent": settings.USER_AGENT, "Accept": "application/json"},
        )

    def _check(self, response: httpx.Response) -> None:
        if response.status_code >= 400:
            raise SourceUnavailable(self.name, f"HTTP {response.status_code} from {response.request.url.path}")

    def query_for(self, record: PlantRecord) -> Optional[str]:
        """The lookup string this client uses for ``record``."""
        return record.scientific_name or record.common_name

    async def _search(self, query: str) -> Optional[dict[str, Any]]:
        raise NotImplementedError

    async def search(self, query: Optional[str]) -> Optional[dict[str, Any]]:
        if is_empty(query):
            return None
        try:
            payload = await self._search(query.strip())
        except httpx.TimeoutException:
            logger.warning("%s: timed out after %.0fs looking up %r", self.name, self.timeout, query)
            return None
        except Exception as exc:
            logger.warning("%s: lookup for %r failed: %s", self.name, query, exc)
            return None
        if not payload:
            logger.debug("%s: no result for %r", self.name, query)
            return None
        return payload


def compact(payload: dict[str, Any]) -> dict[str, Any]:
    """Drop empty entries from a flattened provider payload."""
    return {k: v for k, v in payload.items() if not is_empty(v)}


def split_binomial(name: Any) -> tuple[Optional[str], Optional[str]]:
    """'Rosa canina L.' -> ('Rosa', 'canina')."""
    if isinstance(name, list):
        name = name[0] if name else None
    if not isinstance(name, str):
        return None, None
    parts = name.split()
    if len(parts) < 2:
        return (parts[0] if parts else None), None
    return parts[0], parts[1]


def build_source_chain(transport: Optional[httpx.AsyncBaseTransport] = None) -> list[SourceClient]:
    """Source clients in enrichment order."""
    from app.services.perenual import PerenualClient
    from app.services.trefle import TrefleClient
    from app.services.wikipedia import WikipediaSearchClient, WikipediaSummaryClient

    clients: dict[str, SourceClient] = {
        "perenual": PerenualClient(transport=transport),
        "trefle": TrefleClient(transport=transport),
        "wikipedia": WikipediaSummaryClient(transport=transport),
        "wikipedia_search": WikipediaSearchClient(transport=transport),
    }
    return [clients[name] for name in SOURCE_CHAIN_ORDER]

"""
Plant lookup and on-read enrichment.

``PlantLookupService.get_plant`` resolves a key to a stored plant, normalizes
it, optionally fills its gaps from the source chain, writes the filled fields
back and translates the text fields for the response.

Resolution order: numeric id, then the exact (genus, species) pair parsed from
the key, then a common-name substring match. The lowest id wins wherever
several rows qualify.

Enrichment runs the source clients in chain order and stops as soon as no
enrichable field is empty. The whole chain shares one deadline; a client still
running when it expires is left to finish on its own (its own HTTP timeout
bounds it) and the lookup returns what it has.

Write-back of the filled fields is handed to ``defer`` when one is supplied
(the HTTP layer passes ``BackgroundTasks.add_task`` so the response is not held
up) and awaited inline otherwise.

Listings enrich every plant on the page the same way, a few at a time.
"""
import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any, Optional, Union

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.errors import PlantNotFound
from app.models.plant import Plant
from app.schemas.plant import PlantRecord
from app.services.merger import MergeResult, missing_fields
from app.services.normalizer import normalize, normalize_row
from app.services.sources import SourceClient
from app.services.translation import Translator
from app.services.upsert import persist_changes

logger = logging.getLogger(__name__)

ENRICHABLE_FIELDS: tuple[str, ...] = (
    "common_name",
    "family",
    "description",
    "image_url",
    "type",
    "growth_rate",
    "hardiness_zones",
    "habitat_range",
    "soils",
    "pollinators",
    "edibility",
    "medicinal",
)

# Plants enriched at once when a listing page is filled in.
LIST_ENRICH_CONCURRENCY = 6

# Source calls abandoned at the enrichment deadline; referenced until they finish.
_abandoned: set[asyncio.Task] = set()


async def enrich_record(
    record: PlantRecord,
    clients: Sequence[SourceClient],
    deadline_seconds: Optional[float] = None,
) -> MergeResult:
    """Fill ``record``'s gaps from ``clients`` in order. Never raises for source failures."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + (deadline_seconds if deadline_seconds is not None else settings.ENRICH_DEADLINE_SECONDS)
    result = MergeResult(merged=record.model_copy(deep=True))

    for client in clients:
        gaps = missing_fields(result.merged, ENRICHABLE_FIELDS)
        if not gaps:
            break
        query = client.query_for(result.merged)
        if not query:
            continue

        remaining = deadline - loop.time()
        if remaining <= 0:
            logger.info("enrichment: deadline reached before %s for %s", client.name, record.identity_label())
            break

        task = asyncio.ensure_future(client.search(query))
        done, _ = await asyncio.wait({task}, timeout=remaining)
        if not done:
            _abandoned.add(task)
            task.add_done_callback(_abandoned.discard)
            logger.warning(
                "enrichment: deadline reached waiting on %s for %s, returning partial result",
                client.name, record.identity_label(),
            )
            break

        payload = task.result()
        if payload is None:
            continue
        before = result.changed_fields
        result = result.then(normalize(payload, source=client.record_source))
        filled = result.changed_fields - before
        if filled:
            logger.debug("enrichment: %s filled %s for %s", client.name, sorted(filled), record.identity_label())

    return result


def _like_pattern(text: str) -> str:
    """Substring LIKE pattern with the wildcards in ``text`` matched literally."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _split_key(key: str) -> tuple[Optional[str], Optional[str]]:
    parts = key.replace("_", " ").split()
    if len(parts) < 2:
        return None, None
    return parts[0], parts[1]


class PlantLookupService:
    def __init__(
        self,
        db: AsyncSession,
        session_factory: async_sessionmaker[AsyncSession],
        clients: Sequence[SourceClient] = (),
        translator: Optional[Translator] = None,
        use_db_first: Optional[bool] = None,
        deadline_seconds: Optional[float] = None,
    ):
        self.db = db
        self.session_factory = session_factory
        self.clients = list(clients)
        self.translator = translator
        self.use_db_first = settings.USE_DB_FIRST if use_db_first is None else use_db_first
        self.deadline_seconds = deadline_seconds

    async def resolve(self, key: Union[int, str]) -> Plant:
        """Stored plant for ``key``; raises PlantNotFound."""
        text = str(key).strip()

        if text.isdecimal():
            plant = await self.db.get(Plant, int(text))
            if plant is not None:
                return plant

        genus, species = _split_key(text)
        if genus and species:
            plant = await self.db.scalar(
                select(Plant)
                .where(Plant.genus == genus, Plant.species == species)
                .order_by(Plant.id)
                .limit(1)
            )
            if plant is not None:
                return plant

        if text:
            plant = await self.db.scalar(
                select(Plant)
                .where(Plant.common_name.ilike(_like_pattern(text), escape="\\"))
                .order_by(Plant.id)
                .limit(1)
            )
            if plant is not None:
                return plant

        raise PlantNotFound(key)

    async def _translate(self, record: PlantRecord) -> PlantRecord:
        if self.translator is None or not self.translator.enabled:
            return record
        return await self.translator.translate_record(record)

    async def _enrich(
        self, plant_id: int, record: PlantRecord, defer: Optional[Callable[..., Any]] = None
    ) -> PlantRecord:
        result = await enrich_record(record, self.clients, self.deadline_seconds)
        if result.changed:
            if defer is not None:
                defer(persist_changes, self.session_factory, plant_id, result.merged, result.changed_fields)
            else:
                await persist_changes(self.session_factory, plant_id, result.merged, result.changed_fields)
        return result.merged

    async def get_plant(
        self,
        key: Union[int, str],
        defer: Optional[Callable[..., Any]] = None,
        translate: bool = True,
    ) -> PlantRecord:
        plant = await self.resolve(key)
        record = normalize_row(plant)

        if self.use_db_first and self.clients:
            record = await self._enrich(plant.id, record, defer)

        if translate:
            record = await self._translate(record)
        return record

    async def search(
        self,
        q: Optional[str] = None,
        page: int = 1,
        per_page: int = 12,
        translate: bool = True,
        defer: Optional[Callable[..., Any]] = None,
    ) -> tuple[list[PlantRecord], int]:
        """
        Page of plants whose common name, binomial or family contains ``q``.

        With USE_DB_FIRST on, every listed plant is enriched like a single
        lookup, at most LIST_ENRICH_CONCURRENCY at a time.
        """
        query = select(Plant)
        if q:
            like = _like_pattern(q)
            query = query.where(
                or_(
                    Plant.common_name.ilike(like, escape="\\"),
                    (Plant.genus + " " + Plant.species).ilike(like, escape="\\"),
                    Plant.family.ilike(like, escape="\\"),
                )
            )

        total = await self.db.scalar(select(func.count()).select_from(query.subquery())) or 0
        offset = (page - 1) * per_page
        result = await self.db.execute(query.order_by(Plant.common_name, Plant.id).offset(offset).limit(per_page))
        plants = result.scalars().all()
        records = [normalize_row(p) for p in plants]

        if self.use_db_first and self.clients:
            semaphore = asyncio.Semaphore(LIST_ENRICH_CONCURRENCY)

            async def _bounded(plant_id: int, record: PlantRecord) -> PlantRecord:
                async with semaphore:
                    return await self._enrich(plant_id, record, defer)

            records = list(await asyncio.gather(*(_bounded(p.id, r) for p, r in zip(plants, records))))

        if translate:
            records = list(await asyncio.gather(*(self._translate(r) for r in records)))
        return records, total

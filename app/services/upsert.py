"""
Persistence upserter.

Records are matched against stored plants by identity: the exact
(genus, species) pair first, then the exact common name, lowest id first when
several rows qualify. A matched row is merged with the incoming record through
the enrichment merger, so stored values are only ever gap-filled, and then
updated by id. The affected-row count of that UPDATE decides whether the
record is inserted instead.

Records are written in batches, one transaction per batch. When a batch fails
it is rolled back as a whole and each of its records is retried in its own
transaction; records that still fail are reported with their full content.
"""
import json
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.core.errors import MalformedRecord, TransactionFailure
from app.models.plant import Plant
from app.schemas.plant import PlantRecord
from app.services.merger import merge, union_lists
from app.services.normalizer import normalize_row, record_to_row

logger = logging.getLogger(__name__)

INSERTED = "inserted"
UPDATED = "updated"
UNCHANGED = "unchanged"

_PROVENANCE = {"source", "data_sources"}


@dataclass
class UpsertReport:
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    failures: list[MalformedRecord] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def processed(self) -> int:
        return self.inserted + self.updated + self.unchanged + len(self.failures)

    def count(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)


# ── Identity matching ─────────────────────────────────────────────────────────

async def find_existing(db: AsyncSession, record: PlantRecord) -> Optional[Plant]:
    """Stored plant matching ``record``'s identity, or None."""
    if record.genus and record.species:
        plant = await db.scalar(
            select(Plant)
            .where(Plant.genus == record.genus, Plant.species == record.species)
            .order_by(Plant.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        if plant is not None:
            return plant
    if record.common_name:
        return await db.scalar(
            select(Plant)
            .where(Plant.common_name == record.common_name)
            .order_by(Plant.id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
    return None


# ── Single record ─────────────────────────────────────────────────────────────

async def upsert_one(db: AsyncSession, record: PlantRecord) -> str:
    """
    Update the matching plant or insert a new one. Caller owns the transaction.

    A match that contributes nothing still issues its UPDATE, with the stored
    updated_at as the only value, so a row deleted since the match is inserted.
    """
    existing = await find_existing(db, record)
    if existing is not None:
        result = merge(normalize_row(existing), record)
        if result.changed:
            values = record_to_row(result.merged, result.changed_fields | _PROVENANCE)
        else:
            values = {"updated_at": existing.updated_at}
        res = await db.execute(
            update(Plant)
            .where(Plant.id == existing.id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount:
            return UPDATED if result.changed else UNCHANGED
        logger.info("upsert: plant %d vanished before update, inserting %s", existing.id, record.identity_label())

    record = record.model_copy(update={"data_sources": union_lists(record.data_sources, [record.source])})
    db.add(Plant(**record_to_row(record)))
    await db.flush()
    return INSERTED


# ── Batches ───────────────────────────────────────────────────────────────────

async def _run_batch(
    session_factory: async_sessionmaker[AsyncSession], batch: Sequence[PlantRecord]
) -> list[str]:
    outcomes: list[str] = []
    async with session_factory() as db:
        async with db.begin():
            for record in batch:
                outcomes.append(await upsert_one(db, record))
    return outcomes


async def _retry_individually(
    session_factory: async_sessionmaker[AsyncSession],
    batch: Sequence[PlantRecord],
    offset: int,
    report: UpsertReport,
) -> None:
    for position, record in enumerate(batch, start=offset):
        try:
            outcomes = await _run_batch(session_factory, [record])
        except Exception as exc:
            failure = MalformedRecord(position, record.model_dump(), exc)
            logger.error(
                "upsert_many: %s, content=%s",
                failure, json.dumps(failure.content, ensure_ascii=False, default=str),
            )
            report.failures.append(failure)
        else:
            report.count(outcomes[0])


async def upsert_many(
    session_factory: async_sessionmaker[AsyncSession],
    records: Iterable[PlantRecord],
    batch_size: Optional[int] = None,
) -> UpsertReport:
    """Insert or update ``records`` batch by batch. Never raises on bad records."""
    report = UpsertReport()
    records = list(records)
    if not records:
        return report

    size = batch_size or settings.IMPORT_BATCH_SIZE
    for start in range(0, len(records), size):
        batch = records[start:start + size]
        try:
            outcomes = await _run_batch(session_factory, batch)
        except Exception as exc:
            logger.warning("upsert_many: %s, retrying records one by one", TransactionFailure(start, len(batch), exc))
            await _retry_individually(session_factory, batch, start, report)
        else:
            for outcome in outcomes:
                report.count(outcome)

        logger.info(
            "upsert_many: %d/%d processed (inserted=%d, updated=%d, unchanged=%d, failed=%d)",
            min(start + size, len(records)), len(records),
            report.inserted, report.updated, report.unchanged, len(report.failures),
        )

    return report


# ── Delta write-back ──────────────────────────────────────────────────────────

async def persist_changes(
    session_factory: async_sessionmaker[AsyncSession],
    plant_id: int,
    record: PlantRecord,
    fields: Iterable[str],
) -> bool:
    """Write only ``fields`` (plus provenance) of ``record`` to plant ``plant_id``.

    Best-effort: failures are logged and reported as False.
    """
    fields = set(fields)
    if not fields:
        return False
    values = record_to_row(record, fields | _PROVENANCE)
    try:
        async with session_factory() as db:
            async with db.begin():
                res = await db.execute(
                    update(Plant)
                    .where(Plant.id == plant_id)
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
    except Exception:
        logger.exception("persist_changes: could not write %s to plant %d", sorted(fields), plant_id)
        return False
    if not res.rowcount:
        logger.info("persist_changes: plant %d no longer exists", plant_id)
        return False
    logger.info("persist_changes: plant %d updated (%s)", plant_id, ", ".join(sorted(fields)))
    return True

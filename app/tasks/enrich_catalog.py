"""
ARQ task: fill the gaps of stored plants from the external source chain.

Walks the plants table in id order, BATCH_SIZE rows at a time. Plants with no
empty enrichable field are skipped; every other plant runs through the same
source chain as an on-read lookup, and the filled fields are written back.

Triggered on-demand only (no cron). Can be triggered via:
  - Admin endpoint: POST /api/v1/admin/enrich
  - scripts/run_enrich.py
"""
import logging
import traceback
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import AsyncSessionLocal
from app.models.plant import Plant
from app.services.enrichment import ENRICHABLE_FIELDS, enrich_record
from app.services.merger import missing_fields
from app.services.normalizer import normalize_row
from app.services.sources import build_source_chain
from app.services.upsert import persist_changes
from app.tasks.fetch_utils import (
    complete_run,
    fail_run,
    is_source_running,
    send_run_report,
    start_run,
)

logger = logging.getLogger(__name__)

BATCH_SIZE = 500


async def _query_coverage(db: AsyncSession) -> dict[str, int]:
    """Count plants with a non-null value per enrichable column."""
    columns = [getattr(Plant, name) for name in ENRICHABLE_FIELDS]
    row = (await db.execute(select(*[func.count(col) for col in columns]))).one()
    return dict(zip(ENRICHABLE_FIELDS, row))


async def enrich_catalog(
    ctx: Optional[dict] = None,
    triggered_by: str = "manual",
    limit: Optional[int] = None,
    clients=None,
    session_factory=None,
    deadline_seconds: Optional[float] = None,
) -> dict[str, int]:
    """Enrich stored plants and record the run. Returns the run counters."""
    session_factory = session_factory or AsyncSessionLocal
    clients = clients if clients is not None else build_source_chain()

    async with session_factory() as db:
        if await is_source_running(db, "enrichment", "catalog"):
            logger.info("enrich_catalog: already running, skipping")
            return {}

        run = start_run(db, "enrichment", "catalog", triggered_by)
        await db.commit()
        await db.refresh(run)

        logger.info("enrich_catalog: starting (run_id=%d, triggered_by=%s)", run.id, triggered_by)

        stats = {"records_read": 0, "updated": 0, "unchanged": 0, "skipped": 0, "errors": 0}
        error_messages: list[str] = []

        try:
            before_coverage = await _query_coverage(db)
            last_id = 0

            while limit is None or stats["records_read"] < limit:
                size = BATCH_SIZE if limit is None else min(BATCH_SIZE, limit - stats["records_read"])
                result = await db.execute(
                    select(Plant).where(Plant.id > last_id).order_by(Plant.id).limit(size)
                )
                plants = result.scalars().all()
                if not plants:
                    break

                for plant in plants:
                    last_id = plant.id
                    stats["records_read"] += 1
                    record = normalize_row(plant)
                    if not missing_fields(record, ENRICHABLE_FIELDS):
                        stats["skipped"] += 1
                        continue

                    try:
                        merged = await enrich_record(record, clients, deadline_seconds)
                        if not merged.changed:
                            stats["unchanged"] += 1
                            continue
                        if await persist_changes(session_factory, plant.id, merged.merged, merged.changed_fields):
                            stats["updated"] += 1
                        else:
                            stats["errors"] += 1
                            error_messages.append(f"Plant {plant.id} ({record.identity_label()}): write-back failed")
                    except Exception as exc:
                        stats["errors"] += 1
                        error_messages.append(f"Plant {plant.id} ({record.identity_label()}): {exc}")
                        logger.warning("enrich_catalog: error on plant %d: %s", plant.id, exc)

                # write-backs happen in their own sessions
                for plant in plants:
                    db.expunge(plant)
                logger.info(
                    "enrich_catalog: progress, %d plants processed (updated=%d, unchanged=%d, skipped=%d, errors=%d)",
                    stats["records_read"], stats["updated"], stats["unchanged"], stats["skipped"], stats["errors"],
                )

            after_coverage = await _query_coverage(db)

            if error_messages:
                run.error_detail = "\n".join(error_messages[:50])
            complete_run(run, stats)
            await db.commit()

        except Exception as exc:
            logger.exception("enrich_catalog: unexpected error: %s", exc)
            try:
                await db.rollback()
                fail_run(run, traceback.format_exc())
                await db.commit()
                await db.refresh(run)
            except Exception:
                logger.exception("enrich_catalog: could not persist failed status for run %d", run.id)
            await send_run_report("Catalog Enrichment", run)
            raise

    logger.info(
        "enrich_catalog: complete (updated=%d, unchanged=%d, skipped=%d, errors=%d)",
        stats["updated"], stats["unchanged"], stats["skipped"], stats["errors"],
    )
    coverage_lines = [
        f"{name}: {before_coverage[name]:,} -> {after_coverage[name]:,}"
        for name in ENRICHABLE_FIELDS
        if after_coverage[name] != before_coverage[name]
    ]
    await send_run_report("Catalog Enrichment", run, coverage_lines + error_messages)
    return stats

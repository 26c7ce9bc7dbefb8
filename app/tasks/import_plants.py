"""
ARQ task: batch-import plants into the catalog.

Sources
-------
- ``csv``: the local dataset at LOCAL_CSV_PATH. The delimiter (comma,
  semicolon or tab) is detected from the header line; rows beyond
  CSV_MAX_READ (or ``max_rows``) are ignored. Records are tagged
  ``source="csv"``.
- ``perenual`` / ``trefle``: one listing page of the provider API, optionally
  filtered by ``query``.

Every row goes through the field normalizer and then the batch upserter, so
stored plants are only gap-filled and new identities are inserted. Rows
without any identity (no common name and no genus/species pair) are counted
as skipped before they reach the database.

Each run is tracked as a DataSourceRun (job="import") and a plain-text report
is emailed when it finishes or fails.
"""
import csv
import io
import logging
import traceback
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

from app.core.config import settings
from app.db.session import AsyncSessionLocal
from app.schemas.plant import PlantRecord
from app.services.normalizer import normalize
from app.services.perenual import PerenualClient, flatten_species
from app.services.trefle import TrefleClient, flatten_plant
from app.services.upsert import upsert_many
from app.tasks.fetch_utils import (
    complete_run,
    fail_run,
    is_source_running,
    send_run_report,
    start_run,
)

logger = logging.getLogger(__name__)

IMPORT_SOURCES = ("csv", "perenual", "trefle")
_DELIMITERS = ",;\t"


@dataclass
class ImportReport:
    source: str
    records_read: int = 0
    skipped: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    # {"index": int, "error": str, "content": dict} per record that could not be stored
    failures: list[dict[str, Any]] = field(default_factory=list)
    run_id: Optional[int] = None

    @property
    def ok(self) -> bool:
        return not self.failures

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


# ── CSV reading ───────────────────────────────────────────────────────────────

def detect_delimiter(header_line: str) -> str:
    try:
        return csv.Sniffer().sniff(header_line, delimiters=_DELIMITERS).delimiter
    except csv.Error:
        # Sniffer gives up on single-column or irregular headers; the most frequent candidate wins.
        return max(_DELIMITERS, key=header_line.count)


def parse_csv(text: str, max_rows: Optional[int] = None) -> list[dict[str, str]]:
    """
    Parse CSV text into header-keyed dicts.

    Blank lines are skipped. Short rows are padded with "" and surplus cells
    are joined back into the last column, so a stray delimiter inside an
    unquoted description does not shift other fields.
    """
    text = text.lstrip("\ufeff")
    lines = text.splitlines()
    header_line = next((line for line in lines if line.strip()), None)
    if header_line is None:
        return []

    delimiter = detect_delimiter(header_line)
    reader = csv.reader(io.StringIO(text), delimiter=delimiter)

    header: Optional[list[str]] = None
    rows: list[dict[str, str]] = []
    for cells in reader:
        if not any(cell.strip() for cell in cells):
            continue
        if header is None:
            header = [cell.strip() or f"col{i}" for i, cell in enumerate(cells)]
            continue
        if max_rows is not None and len(rows) >= max_rows:
            break
        if len(cells) > len(header):
            cells = cells[:len(header) - 1] + [delimiter.join(cells[len(header) - 1:])]
        cells = [cell.strip() for cell in cells] + [""] * (len(header) - len(cells))
        rows.append(dict(zip(header, cells)))
    return rows


def read_csv_file(path: str, max_rows: Optional[int] = None) -> list[dict[str, str]]:
    file_path = Path(path)
    if not file_path.is_absolute():
        file_path = Path.cwd() / file_path
    text = file_path.read_text(encoding="utf-8-sig", errors="replace")
    rows = parse_csv(text, max_rows=max_rows)
    logger.info("import_plants: read %d rows from %s", len(rows), file_path)
    return rows


# ── API listings ──────────────────────────────────────────────────────────────

async def fetch_listing(source: str, query: Optional[str] = None, page: int = 1) -> list[dict[str, Any]]:
    """One listing page from a provider, flattened into raw payloads. Raises on failure."""
    if source == "perenual":
        body = await PerenualClient().fetch_species_list(page=page, query=query)
        return [flatten_species(species) for species in body.get("data") or []]
    if source == "trefle":
        body = await TrefleClient().fetch_plants_page(page=page, query=query)
        return [flatten_plant(plant) for plant in body.get("data") or []]
    raise ValueError(f"unknown import source {source!r}")


# ── Core ──────────────────────────────────────────────────────────────────────

def _has_identity(record: PlantRecord) -> bool:
    return bool(record.common_name or (record.genus and record.species))


async def import_records(
    raw_rows: list[dict[str, Any]],
    source: str,
    session_factory=None,
    batch_size: Optional[int] = None,
) -> ImportReport:
    """Normalize ``raw_rows`` and upsert them. Never raises on bad rows."""
    session_factory = session_factory or AsyncSessionLocal
    report = ImportReport(source=source, records_read=len(raw_rows))

    records: list[PlantRecord] = []
    # raw_rows index of each entry in records
    positions: list[int] = []
    for index, raw in enumerate(raw_rows):
        record = normalize(raw, source=source)
        if not _has_identity(record):
            report.skipped += 1
            continue
        records.append(record)
        positions.append(index)

    if report.skipped:
        logger.info("import_plants: skipped %d rows without a name or genus/species", report.skipped)

    result = await upsert_many(session_factory, records, batch_size=batch_size)
    report.inserted = result.inserted
    report.updated = result.updated
    report.unchanged = result.unchanged
    report.failures = [
        {"index": positions[failure.index], "error": str(failure.__cause__), "content": failure.content}
        for failure in result.failures
    ]
    return report


# ── Main task ─────────────────────────────────────────────────────────────────

async def import_plants(
    ctx: Optional[dict] = None,
    csv_path: Optional[str] = None,
    max_rows: Optional[int] = None,
    source: str = "csv",
    query: Optional[str] = None,
    triggered_by: str = "scheduler",
    session_factory=None,
) -> ImportReport:
    """
    Import one source into the catalog and record the run.

    Returns the ImportReport; a run that is already in progress for the same
    source returns an empty report without touching the catalog.
    """
    if source not in IMPORT_SOURCES:
        raise ValueError(f"unknown import source {source!r}, expected one of {IMPORT_SOURCES}")
    session_factory = session_factory or AsyncSessionLocal

    async with session_factory() as db:
        if await is_source_running(db, "import", source):
            logger.info("import_plants: %s import already in progress, skipping", source)
            return ImportReport(source=source)
        run = start_run(db, "import", source, triggered_by)
        await db.commit()
        await db.refresh(run)

        logger.info("import_plants: starting (run_id=%d, source=%s)", run.id, source)

        try:
            if source == "csv":
                limit = max_rows if max_rows is not None else settings.CSV_MAX_READ
                raw_rows = read_csv_file(csv_path or settings.LOCAL_CSV_PATH, max_rows=limit)
            else:
                raw_rows = await fetch_listing(source, query=query)
                if max_rows is not None:
                    raw_rows = raw_rows[:max_rows]

            report = await import_records(raw_rows, source, session_factory=session_factory)
            report.run_id = run.id

            complete_run(run, {
                "records_read": report.records_read,
                "inserted": report.inserted,
                "updated": report.updated,
                "unchanged": report.unchanged,
                "skipped": report.skipped,
                "errors": len(report.failures),
            })
            await db.commit()

        except Exception:
            tb = traceback.format_exc()
            logger.exception("import_plants: %s import failed", source)
            try:
                await db.rollback()
                fail_run(run, tb)
                await db.commit()
                await db.refresh(run)
            except Exception:
                logger.exception("import_plants: could not persist failed status for run %d", run.id)
            await send_run_report("Plant Import", run)
            raise

    logger.info(
        "import_plants: complete (source=%s, read=%d, inserted=%d, updated=%d, unchanged=%d, skipped=%d, failed=%d)",
        source, report.records_read, report.inserted, report.updated,
        report.unchanged, report.skipped, len(report.failures),
    )
    details = [f"record {f['index']}: {f['error']}" for f in report.failures]
    await send_run_report("Plant Import", run, details)
    return report

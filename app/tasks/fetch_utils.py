"""
Shared utilities for catalog jobs.

Provides timezone helpers, DataSourceRun lifecycle management and the plain-text
email report used by import_plants and enrich_catalog.
"""
import logging
from collections.abc import Sequence
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.models.data_source_run import DataSourceRun
from app.services.email import send_email

logger = logging.getLogger(__name__)

_tz = ZoneInfo(settings.TIMEZONE)
_STALE_THRESHOLD = timedelta(hours=2)
_MAX_LISTED = 50

_STAT_KEYS = ("records_read", "inserted", "updated", "unchanged", "skipped", "errors")


# ── Time helpers ──────────────────────────────────────────────────────────────

def to_local(dt: datetime) -> datetime:
    """Convert an aware datetime to the configured local timezone."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(_tz)


def fmt(dt: datetime) -> str:
    """Format a datetime in local time as 'Monday, Feb 24 at 4:00 AM UTC'."""
    local = to_local(dt)
    return local.strftime("%A, %b %-d at %-I:%M %p %Z")


def elapsed(run: DataSourceRun) -> str:
    if not (run.started_at and run.finished_at):
        return "N/A"
    delta = to_local(run.finished_at) - to_local(run.started_at)
    minutes = int(delta.total_seconds() // 60)
    seconds = int(delta.total_seconds() % 60)
    return f"{minutes}m {seconds}s"


# ── DataSourceRun lifecycle ───────────────────────────────────────────────────

def start_run(db: AsyncSession, job: str, source: str, triggered_by: str) -> DataSourceRun:
    """Create a DataSourceRun with status='running'. Caller must commit."""
    run = DataSourceRun(
        job=job,
        source=source,
        status="running",
        triggered_by=triggered_by,
        started_at=datetime.now(timezone.utc),
    )
    db.add(run)
    return run


def complete_run(run: DataSourceRun, stats: dict) -> None:
    """Set status='completed', finished_at=now(), populate stats. Caller must commit."""
    run.status = "completed"
    run.finished_at = datetime.now(timezone.utc)
    for key in _STAT_KEYS:
        if key in stats:
            setattr(run, key, stats[key])


def fail_run(run: DataSourceRun, error: str) -> None:
    """Set status='failed', finished_at=now(), error_detail. Caller must commit."""
    run.status = "failed"
    run.finished_at = datetime.now(timezone.utc)
    run.error_detail = error[:4000] if error else None


async def is_source_running(db: AsyncSession, job: str, source: str) -> bool:
    """True if a run of ``job`` for ``source`` started within the last 2 hours is still running."""
    cutoff = datetime.now(timezone.utc) - _STALE_THRESHOLD
    result = await db.execute(
        select(DataSourceRun.id)
        .where(
            DataSourceRun.job == job,
            DataSourceRun.source == source,
            DataSourceRun.status == "running",
            DataSourceRun.started_at >= cutoff,
        )
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


# ── Email reporting ───────────────────────────────────────────────────────────

def format_report(title: str, run: DataSourceRun, details: Sequence[str] = ()) -> str:
    started = fmt(run.started_at) if run.started_at else "N/A"
    finished = fmt(run.finished_at) if run.finished_at else "N/A"

    results_lines = [
        ("Records read:", run.records_read or 0),
        ("Inserted:", run.inserted or 0),
        ("Updated:", run.updated or 0),
        ("Unchanged:", run.unchanged or 0),
        ("Skipped:", run.skipped or 0),
        ("Errors:", run.errors or 0),
    ]
    max_label = max(len(label) for label, _ in results_lines)
    max_num = max(len(f"{val:,}") for _, val in results_lines)
    results_section = "\n".join(
        f"{label:<{max_label}} {val:>{max_num},}" for label, val in results_lines
    )

    body = (
        f"HerboLive {title}\n\n"
        f"Source:   {run.source}\n"
        f"Status:   {run.status}\n"
        f"Started:  {started}\n"
        f"Finished: {finished}\n"
        f"Duration: {elapsed(run)}\n\n"
        f"── Results ──────────────────────────────\n"
        f"{results_section}\n"
    )

    if run.error_detail:
        body += f"\n── Error ────────────────────────────────\n{run.error_detail}\n"

    if details:
        shown = "\n".join(details[:_MAX_LISTED])
        if len(details) > _MAX_LISTED:
            shown += f"\n...and {len(details) - _MAX_LISTED} more"
        body += f"\n── Details ──────────────────────────────\n{shown}\n"

    return body


async def send_run_report(title: str, run: DataSourceRun, details: Sequence[str] = ()) -> None:
    subject = f"HerboLive {title}: {'Complete' if run.status == 'completed' else 'Error'}"
    try:
        await send_email(subject, format_report(title, run, details))
    except Exception:
        logger.exception("send_run_report: failed to send report for run %s", run.id)

from typing import Optional

from fastapi import APIRouter, Query
from sqlalchemy import func, select

from app.core.deps import DbSession, JobQueue
from app.models.data_source_run import DataSourceRun
from app.schemas.admin import (
    DataSourceRunListResponse,
    DataSourceRunRead,
    EnrichRequest,
    ImportRequest,
    JobQueued,
)
from app.tasks.fetch_utils import is_source_running

router = APIRouter(prefix="/admin", tags=["admin"])


# ── Job trigger endpoints ────────────────────────────────────────────────────


@router.post("/import", response_model=JobQueued, status_code=202)
async def trigger_import(db: DbSession, pool: JobQueue, body: ImportRequest = ImportRequest()) -> JobQueued:
    if await is_source_running(db, "import", body.source):
        return JobQueued(status="already_running", job="import_plants")

    job = await pool.enqueue_job(
        "import_plants",
        csv_path=body.csv_path,
        max_rows=body.max_rows,
        source=body.source,
        query=body.query,
        triggered_by="admin",
    )
    return JobQueued(status="queued", job="import_plants", job_id=job.job_id if job else None)


@router.post("/enrich", response_model=JobQueued, status_code=202)
async def trigger_enrich(db: DbSession, pool: JobQueue, body: EnrichRequest = EnrichRequest()) -> JobQueued:
    if await is_source_running(db, "enrichment", "catalog"):
        return JobQueued(status="already_running", job="enrich_catalog")

    job = await pool.enqueue_job("enrich_catalog", triggered_by="admin", limit=body.limit)
    return JobQueued(status="queued", job="enrich_catalog", job_id=job.job_id if job else None)


# ── Run history ──────────────────────────────────────────────────────────────


@router.get("/runs", response_model=DataSourceRunListResponse)
async def list_runs(
    db: DbSession,
    job: Optional[str] = Query(None, description="import | enrichment"),
    source: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
) -> DataSourceRunListResponse:
    """Paginated run history, newest first."""
    query = select(DataSourceRun)
    if job:
        query = query.where(DataSourceRun.job == job)
    if source:
        query = query.where(DataSourceRun.source == source)

    total = await db.scalar(select(func.count()).select_from(query.subquery())) or 0
    offset = (page - 1) * per_page
    result = await db.execute(
        query.order_by(DataSourceRun.started_at.desc(), DataSourceRun.id.desc()).offset(offset).limit(per_page)
    )
    items = [DataSourceRunRead.model_validate(run) for run in result.scalars().all()]
    return DataSourceRunListResponse(items=items, total=total, page=page, per_page=per_page)

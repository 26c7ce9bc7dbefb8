from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ImportRequest(BaseModel):
    source: Literal["csv", "perenual", "trefle"] = "csv"
    csv_path: Optional[str] = None
    max_rows: Optional[int] = Field(None, ge=1)
    query: Optional[str] = None


class EnrichRequest(BaseModel):
    limit: Optional[int] = Field(None, ge=1)


class JobQueued(BaseModel):
    status: Literal["queued", "already_running"]
    job: str
    job_id: Optional[str] = None


class DataSourceRunRead(BaseModel):
    id: int
    job: str
    source: str
    status: str
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    records_read: Optional[int] = None
    inserted: Optional[int] = None
    updated: Optional[int] = None
    unchanged: Optional[int] = None
    skipped: Optional[int] = None
    errors: Optional[int] = None
    error_detail: Optional[str] = None
    triggered_by: Optional[str] = None

    model_config = {"from_attributes": True}


class DataSourceRunListResponse(BaseModel):
    items: list[DataSourceRunRead]
    total: int
    page: int
    per_page: int

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query

from app.core.config import settings
from app.core.deps import LookupService
from app.core.errors import PlantNotFound
from app.schemas.plant import CatalogConfig, PlantListResponse, PlantRecord

router = APIRouter(tags=["plants"])


@router.get("/config", response_model=CatalogConfig)
async def get_config() -> CatalogConfig:
    return CatalogConfig(
        use_db_first=settings.USE_DB_FIRST,
        translation_enabled=settings.translation_enabled,
        translate_target=settings.TRANSLATE_TARGET,
    )


@router.get("/plants", response_model=PlantListResponse)
async def list_plants(
    service: LookupService,
    background_tasks: BackgroundTasks,
    q: str | None = Query(None, description="Partial match on common name, binomial or family"),
    page: int = Query(1, ge=1),
    per_page: int = Query(12, ge=1, le=100),
    translate: bool = Query(True, description="Translate text fields to TRANSLATE_TARGET"),
):
    items, total = await service.search(
        q, page=page, per_page=per_page, translate=translate, defer=background_tasks.add_task
    )
    return PlantListResponse(items=items, total=total, page=page, per_page=per_page)


@router.get("/plants/{key}", response_model=PlantRecord)
async def get_plant(
    key: str,
    service: LookupService,
    background_tasks: BackgroundTasks,
    translate: bool = Query(True, description="Translate text fields to TRANSLATE_TARGET"),
):
    """
    Look a plant up by id, binomial ("Rosa canina" or "Rosa_canina") or common
    name. Empty fields are filled from the external sources when USE_DB_FIRST
    is on; the filled fields are saved after the response is sent.
    """
    try:
        return await service.get_plant(key, defer=background_tasks.add_task, translate=translate)
    except PlantNotFound:
        raise HTTPException(status_code=404, detail=f"No plant matches '{key}'")

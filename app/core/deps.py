from collections.abc import AsyncGenerator
from typing import Annotated

from arq.connections import ArqRedis, RedisSettings, create_pool
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import settings
from app.db.session import get_db, get_session_factory
from app.services.enrichment import PlantLookupService
from app.services.sources import SourceClient, build_source_chain
from app.services.translation import TranslationCache, Translator


def get_source_clients() -> list[SourceClient]:
    return build_source_chain()


def get_translation_cache(request: Request) -> TranslationCache:
    """The app-wide cache created at startup."""
    cache = getattr(request.app.state, "translation_cache", None)
    if cache is None:
        cache = request.app.state.translation_cache = TranslationCache()
    return cache


def get_translator(
    cache: Annotated[TranslationCache, Depends(get_translation_cache)],
) -> Translator:
    return Translator(cache)


def get_lookup_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
    clients: Annotated[list[SourceClient], Depends(get_source_clients)],
    translator: Annotated[Translator, Depends(get_translator)],
) -> PlantLookupService:
    return PlantLookupService(db, session_factory, clients=clients, translator=translator)


async def get_job_queue() -> AsyncGenerator[ArqRedis, None]:
    """ArqRedis pool on the same Redis URL the worker uses."""
    pool = await create_pool(RedisSettings.from_dsn(settings.REDIS_URL))
    try:
        yield pool
    finally:
        await pool.close()


DbSession = Annotated[AsyncSession, Depends(get_db)]
LookupService = Annotated[PlantLookupService, Depends(get_lookup_service)]
JobQueue = Annotated[ArqRedis, Depends(get_job_queue)]

from fastapi import APIRouter

from app.api.v1.endpoints import admin, plants

api_router = APIRouter()

api_router.include_router(plants.router)
api_router.include_router(admin.router)

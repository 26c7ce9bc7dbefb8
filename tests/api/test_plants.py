from httpx import AsyncClient
from sqlalchemy import select

from app.core.deps import get_source_clients
from app.main import app
from app.models.plant import Plant
from app.services.normalizer import normalize_row
from app.services.sources import SourceClient


class FixedSource(SourceClient):
    name = "wikipedia"
    record_source = "wikipedia"

    def __init__(self, payload):
        super().__init__()
        self.payload = payload

    async def _search(self, query):
        return self.payload


async def test_health(client: AsyncClient):
    res = await client.get("/api/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


async def test_config(client: AsyncClient):
    res = await client.get("/api/v1/config")
    assert res.status_code == 200
    data = res.json()
    assert "use_db_first" in data
    assert "translation_enabled" in data


async def test_list_plants(client: AsyncClient, add_plant):
    await add_plant(common_name="Dog rose", family="Rosaceae")
    await add_plant(common_name="Peppermint", family="Lamiaceae", pollinators='["bees"]')

    res = await client.get("/api/v1/plants", params={"q": "pepper"})
    assert res.status_code == 200
    data = res.json()
    assert data["total"] == 1
    assert data["items"][0]["common_name"] == "Peppermint"
    assert data["items"][0]["pollinators"] == ["bees"]


async def test_get_plant_by_binomial(client: AsyncClient, add_plant):
    plant_id = await add_plant(genus="Rosa", species="canina", common_name="Dog rose")

    res = await client.get("/api/v1/plants/Rosa_canina")
    assert res.status_code == 200
    data = res.json()
    assert data["id"] == plant_id
    assert data["scientific_name"] == "Rosa canina"
    assert data["edibility"] is None


async def test_get_unknown_plant_is_404(client: AsyncClient):
    res = await client.get("/api/v1/plants/Quercus%20robur")
    assert res.status_code == 404


async def test_get_plant_enriches_and_saves_after_response(client: AsyncClient, add_plant, session_factory):
    plant_id = await add_plant(common_name="Dog rose")
    app.dependency_overrides[get_source_clients] = lambda: [FixedSource({"description": "A climbing wild rose."})]

    res = await client.get(f"/api/v1/plants/{plant_id}")
    assert res.status_code == 200
    assert res.json()["description"] == "A climbing wild rose."

    async with session_factory() as session:
        stored = normalize_row(await session.scalar(select(Plant).where(Plant.id == plant_id)))
    assert stored.description == "A climbing wild rose."
    assert stored.data_sources == ["wikipedia"]


async def test_list_plants_enriches_and_saves_after_response(client: AsyncClient, add_plant, session_factory):
    plant_id = await add_plant(common_name="Dog rose")
    app.dependency_overrides[get_source_clients] = lambda: [FixedSource({"description": "A climbing wild rose."})]

    res = await client.get("/api/v1/plants", params={"q": "dog"})
    assert res.status_code == 200
    assert res.json()["items"][0]["description"] == "A climbing wild rose."

    async with session_factory() as session:
        stored = normalize_row(await session.get(Plant, plant_id))
    assert stored.description == "A climbing wild rose."


async def test_get_plant_with_unicode_digit_key_is_404(client: AsyncClient, add_plant):
    await add_plant(common_name="Dog rose")

    res = await client.get("/api/v1/plants/²")
    assert res.status_code == 404

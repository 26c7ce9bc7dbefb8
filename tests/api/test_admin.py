import pytest_asyncio
from httpx import AsyncClient

from app.core.deps import get_job_queue
from app.main import app
from app.tasks.fetch_utils import complete_run, start_run


class FakeJob:
    job_id = "job-1"


class FakeQueue:
    def __init__(self):
        self.jobs: list[tuple[str, dict]] = []

    async def enqueue_job(self, name, **kwargs):
        self.jobs.append((name, kwargs))
        return FakeJob()


@pytest_asyncio.fixture
async def queue(client: AsyncClient):
    fake = FakeQueue()

    async def override_get_job_queue():
        yield fake

    app.dependency_overrides[get_job_queue] = override_get_job_queue
    return fake


async def test_trigger_import(client: AsyncClient, queue: FakeQueue):
    res = await client.post("/api/v1/admin/import", json={"source": "csv", "max_rows": 10})
    assert res.status_code == 202
    assert res.json() == {"status": "queued", "job": "import_plants", "job_id": "job-1"}
    name, kwargs = queue.jobs[0]
    assert name == "import_plants"
    assert kwargs["max_rows"] == 10
    assert kwargs["triggered_by"] == "admin"


async def test_trigger_import_rejects_unknown_source(client: AsyncClient, queue: FakeQueue):
    res = await client.post("/api/v1/admin/import", json={"source": "gbif"})
    assert res.status_code == 422
    assert queue.jobs == []


async def test_trigger_enrich_when_already_running(client: AsyncClient, queue: FakeQueue, session_factory):
    async with session_factory() as session:
        start_run(session, "enrichment", "catalog", "manual")
        await session.commit()

    res = await client.post("/api/v1/admin/enrich", json={})
    assert res.status_code == 202
    assert res.json()["status"] == "already_running"
    assert queue.jobs == []


async def test_list_runs(client: AsyncClient, session_factory):
    async with session_factory() as session:
        run = start_run(session, "import", "csv", "manual")
        complete_run(run, {"records_read": 3, "inserted": 2, "skipped": 1})
        start_run(session, "enrichment", "catalog", "admin")
        await session.commit()

    res = await client.get("/api/v1/admin/runs", params={"job": "import"})
    assert res.status_code == 200
    data = res.json()
    assert data["total"] == 1
    item = data["items"][0]
    assert item["source"] == "csv"
    assert item["status"] == "completed"
    assert item["inserted"] == 2

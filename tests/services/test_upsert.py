from sqlalchemy import func, select

from app.models.plant import Plant
from app.schemas.plant import PlantRecord
from app.services.normalizer import normalize_row
from app.services.upsert import (
    INSERTED,
    UNCHANGED,
    UPDATED,
    find_existing,
    persist_changes,
    upsert_many,
    upsert_one,
)


async def _count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(Plant))


async def _get(session_factory, plant_id: int) -> Plant:
    async with session_factory() as session:
        return await session.get(Plant, plant_id)


async def test_new_identity_is_inserted_with_provenance(session_factory):
    record = PlantRecord(genus="Rosa", species="canina", common_name="Dog rose", source="csv")

    async with session_factory() as session:
        async with session.begin():
            outcome = await upsert_one(session, record)

    assert outcome == INSERTED
    async with session_factory() as session:
        plant = await session.scalar(select(Plant))
        stored = normalize_row(plant)
    assert stored.common_name == "Dog rose"
    assert stored.data_sources == ["csv"]


async def test_genus_species_match_beats_common_name(session_factory, add_plant):
    by_binomial = await add_plant(genus="Rosa", species="canina", common_name="Briar")
    await add_plant(common_name="Dog rose")

    async with session_factory() as session:
        match = await find_existing(session, PlantRecord(genus="Rosa", species="canina", common_name="Dog rose"))
    assert match.id == by_binomial


async def test_common_name_match_when_no_binomial(session_factory, add_plant):
    plant_id = await add_plant(common_name="Dog rose")

    async with session_factory() as session:
        match = await find_existing(session, PlantRecord(genus="Rosa", species="canina", common_name="Dog rose"))
    assert match.id == plant_id


async def test_lowest_id_wins_among_duplicates(session_factory, add_plant):
    first = await add_plant(common_name="Mint")
    await add_plant(common_name="Mint")

    async with session_factory() as session:
        match = await find_existing(session, PlantRecord(common_name="Mint"))
    assert match.id == first


async def test_existing_plant_is_only_gap_filled(session_factory, add_plant):
    plant_id = await add_plant(genus="Rosa", species="canina", common_name="Dog rose", family=None)
    record = PlantRecord(genus="Rosa", species="canina", common_name="Briar", family="Rosaceae", source="csv")

    report = await upsert_many(session_factory, [record])

    assert report.updated == 1
    assert await _count(session_factory) == 1
    stored = normalize_row(await _get(session_factory, plant_id))
    assert stored.common_name == "Dog rose"
    assert stored.family == "Rosaceae"
    assert stored.data_sources == ["csv"]


async def test_identical_record_is_unchanged(session_factory, add_plant):
    await add_plant(common_name="Dog rose", family="Rosaceae")

    report = await upsert_many(session_factory, [PlantRecord(common_name="Dog rose", family="Rosaceae")])

    assert report.unchanged == 1
    assert report.updated == report.inserted == 0


async def test_unchanged_match_whose_row_is_gone_is_inserted(session_factory, monkeypatch):
    async def stale_match(db, record):
        return Plant(id=9999, common_name="Dog rose", family="Rosaceae")

    monkeypatch.setattr("app.services.upsert.find_existing", stale_match)

    async with session_factory() as session:
        async with session.begin():
            outcome = await upsert_one(session, PlantRecord(common_name="Dog rose", family="Rosaceae", source="csv"))

    assert outcome == INSERTED
    assert await _count(session_factory) == 1


async def test_repeated_identity_in_one_batch(session_factory):
    records = [
        PlantRecord(common_name="Sage", source="csv"),
        PlantRecord(common_name="Sage", family="Lamiaceae", source="csv"),
    ]

    report = await upsert_many(session_factory, records)

    assert (report.inserted, report.updated) == (1, 1)
    assert await _count(session_factory) == 1


async def test_empty_input_is_a_no_op(session_factory):
    report = await upsert_many(session_factory, [])
    assert report.processed == 0
    assert report.ok


async def test_one_bad_record_does_not_sink_the_batch(session_factory):
    records = [PlantRecord(common_name=f"Plant {i}", source="csv") for i in range(500)]
    # no common name and no genus/species: rejected by the table's identity check
    records[250] = PlantRecord(family="Orphanaceae", source="csv")

    report = await upsert_many(session_factory, records, batch_size=500)

    assert report.inserted == 499
    assert len(report.failures) == 1
    failure = report.failures[0]
    assert failure.index == 250
    assert failure.content["family"] == "Orphanaceae"
    assert await _count(session_factory) == 499


async def test_list_fields_round_trip(session_factory):
    record = PlantRecord(common_name="Dog rose", pollinators=["bees", "flies"], soils=[], edibility=False)

    await upsert_many(session_factory, [record])

    async with session_factory() as session:
        stored = normalize_row(await session.scalar(select(Plant)))
    assert stored.pollinators == ["bees", "flies"]
    assert stored.soils == []
    assert stored.edibility is False
    assert stored.medicinal is None


async def test_persist_changes_writes_only_named_fields(session_factory, add_plant):
    plant_id = await add_plant(common_name="Dog rose", family="Rosaceae")
    record = PlantRecord(
        common_name="Dog rose", family="Changed", description="Wild rose", source="wikipedia",
        data_sources=["wikipedia"],
    )

    assert await persist_changes(session_factory, plant_id, record, {"description"})

    stored = normalize_row(await _get(session_factory, plant_id))
    assert stored.description == "Wild rose"
    assert stored.family == "Rosaceae"
    assert stored.data_sources == ["wikipedia"]


async def test_persist_changes_reports_missing_row(session_factory):
    record = PlantRecord(common_name="Ghost", description="gone")
    assert await persist_changes(session_factory, 9999, record, {"description"}) is False


async def test_persist_changes_without_fields_does_nothing(session_factory, add_plant):
    plant_id = await add_plant(common_name="Dog rose")
    assert await persist_changes(session_factory, plant_id, PlantRecord(common_name="x"), set()) is False

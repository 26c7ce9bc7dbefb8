from app.schemas.plant import PlantRecord
from app.services.normalizer import (
    align_images,
    fold_key,
    normalize,
    parse_flag,
    parse_list,
    record_to_row,
    serialize_list,
)


def test_aliases_resolve_every_spelling():
    for key in ("HabitatRange", "habitat_range", "Habitat Range", "habitat-range"):
        record = normalize({"CommonName": "Dog rose", key: "Europe"})
        assert record.habitat_range == "Europe", key


def test_fold_key_ignores_case_and_separators():
    assert fold_key("Habitat Range") == fold_key("habitat_range") == fold_key("HABITAT-RANGE")


def test_first_non_empty_alias_wins():
    record = normalize({"common_name": "  ", "CommonName": "Dog rose"})
    assert record.common_name == "Dog rose"


def test_scientific_name_derived_from_genus_and_species():
    record = normalize({"Genus": "Rosa", "Species": "canina"})
    assert record.scientific_name == "Rosa canina"


def test_explicit_scientific_name_is_kept():
    record = normalize({"Genus": "Rosa", "Species": "canina", "scientific_name": "Rosa canina L."})
    assert record.scientific_name == "Rosa canina L."


def test_scalars_are_trimmed_and_blank_is_none():
    record = normalize({"common_name": "  Dog rose ", "family": "   ", "height": 2})
    assert record.common_name == "Dog rose"
    assert record.family is None
    assert record.height == "2"


def test_list_valued_scalar_takes_first_item():
    record = normalize({"common_name": ["", "Dog rose", "Briar"]})
    assert record.common_name == "Dog rose"


def test_parse_list_shapes():
    assert parse_list(None) == []
    assert parse_list("") == []
    assert parse_list(["bees", " ", "flies "]) == ["bees", "flies"]
    assert parse_list('["bees", "flies"]') == ["bees", "flies"]
    assert parse_list("['bees', 'flies']") == ["bees", "flies"]
    assert parse_list("bees, flies") == ["bees", "flies"]
    assert parse_list("bees; flies") == ["bees", "flies"]
    assert parse_list("bees") == ["bees"]


def test_parse_list_falls_back_on_broken_brackets():
    assert parse_list("[bees, 'hover flies', ]") == ["bees", "hover flies"]


def test_parse_list_keeps_apostrophes_in_json():
    assert parse_list('["bee\'s nest", "moths"]') == ["bee's nest", "moths"]


def test_flags_are_tri_state():
    assert parse_flag(1) is True
    assert parse_flag("1") is True
    assert parse_flag("TRUE") is True
    assert parse_flag(True) is True
    assert parse_flag(0) is False
    assert parse_flag("0") is False
    assert parse_flag("false") is False
    assert parse_flag(None) is None
    assert parse_flag("") is None
    assert parse_flag("maybe") is None
    assert parse_flag(2) is None


def test_unknown_and_false_flags_stay_distinct():
    known = normalize({"common_name": "a", "edibility": 0})
    unknown = normalize({"common_name": "a"})
    assert known.edibility is False
    assert unknown.edibility is None


def test_image_url_follows_images():
    record = normalize({"common_name": "a", "images": ["http://x/1.jpg", "http://x/2.jpg"]})
    assert record.image_url == "http://x/1.jpg"

    record = normalize({"common_name": "a", "image_url": "http://x/0.jpg", "images": ["http://x/1.jpg"]})
    assert record.images == ["http://x/0.jpg", "http://x/1.jpg"]


def test_align_images_without_any_image():
    assert align_images([], None) == ([], None)


def test_unknown_source_falls_back_to_db():
    assert normalize({"common_name": "a", "source": "gbif"}).source == "db"
    assert normalize({"common_name": "a"}, source="csv").source == "csv"


def test_normalize_is_idempotent():
    raw = {
        "Genus": "Rosa",
        "Species": "canina",
        "CommonName": " Dog rose ",
        "Pollinators": "bees, flies",
        "Soils": "['sandy', 'loamy']",
        "Edibility": "1",
        "Medicinal": "",
        "Image URL": "http://x/rose.jpg",
    }
    once = normalize(raw, source="csv")
    twice = normalize(once.model_dump(), source="csv")
    assert twice == once


def test_serialize_list_round_trips():
    assert serialize_list([]) is None
    stored = serialize_list(["bees", "flies"])
    assert parse_list(stored) == ["bees", "flies"]


def test_record_to_row_restricts_fields():
    record = PlantRecord(common_name="Dog rose", pollinators=["bees"], source="csv", data_sources=["csv"])
    row = record_to_row(record, {"pollinators"})
    assert row == {"pollinators": '["bees"]'}

    full = record_to_row(record)
    assert full["common_name"] == "Dog rose"
    assert full["source"] == "csv"
    assert full["data_sources"] == '["csv"]'
    assert full["soils"] is None

"""
Field normalizer: turn any raw plant mapping into a PlantRecord.

Raw records arrive from CSV rows, stored rows and the source-client payloads
with different spellings of the same key (``HabitatRange``, ``habitat_range``,
``Habitat Range``...). FIELD_ALIASES lists the accepted spellings per canonical
field; ``lookup`` compares keys after folding case and dropping spaces,
underscores and hyphens, so one table covers every spelling variant.

List fields are stored as JSON text. ``serialize_list`` writes that form and
``parse_list`` reads it back, along with the looser shapes found in CSV files.
"""
import json
import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any, Optional

from sqlalchemy import inspect

from app.models.plant import Plant
from app.schemas.plant import FLAG_FIELDS, LIST_FIELDS, SCALAR_FIELDS, PlantRecord

logger = logging.getLogger(__name__)

_KEY_FOLD_RE = re.compile(r"[\s_\-]+")

# canonical_field: [accepted raw spellings, in priority order]
FIELD_ALIASES: dict[str, list[str]] = {
    "id":              ["id"],
    "family":          ["family", "family_name"],
    "genus":           ["genus"],
    "species":         ["species", "specific_epithet"],
    "scientific_name": ["scientific_name", "ScientificName", "scientific"],
    "common_name":     ["common_name", "CommonName", "Common", "vernacular_name"],
    "growth_rate":     ["growth_rate", "GrowthRate", "growth"],
    "hardiness_zones": ["hardiness_zones", "HardinessZones", "hardiness_zone", "hardiness"],
    "height":          ["height", "average_height"],
    "width":           ["width", "spread"],
    "type":            ["type", "plant_type", "cycle"],
    "foliage":         ["foliage", "foliage_texture"],
    "leaf":            ["leaf", "leaves", "leaf_color"],
    "flower":          ["flower", "flowers", "flower_color"],
    "ripen":           ["ripen", "fruiting_season", "harvest_season"],
    "reproduction":    ["reproduction", "propagation"],
    "ph":              ["ph", "pH_value", "soil_ph"],
    "habitat":         ["habitat"],
    "habitat_range":   ["habitat_range", "HabitatRange", "origin", "native_to"],
    "other_uses":      ["other_uses", "OtherUses", "Other Uses"],
    "pfaf":            ["pfaf", "pfaf_url"],
    "description":     ["description", "Description", "description_text", "extract"],
    "image_url":       ["image_url", "Image URL", "ImageURL", "image", "thumbnail"],
    "pollinators":     ["pollinators", "pollination"],
    "soils":           ["soils", "soil"],
    "ph_split":        ["ph_split", "p_h_split"],
    "preferences":     ["preferences"],
    "tolerances":      ["tolerances"],
    "images":          ["images", "image_urls"],
    "edibility":       ["edibility", "edible"],
    "medicinal":       ["medicinal", "Medicinal Uses"],
    "source":          ["source"],
    "data_sources":    ["data_sources"],
}

_TRUE_STRINGS = ("1", "true")
_FALSE_STRINGS = ("0", "false")
_VALID_SOURCES = ("db", "csv", "perenual", "trefle", "wikipedia")


# ── Emptiness ─────────────────────────────────────────────────────────────────

def is_empty(value: Any) -> bool:
    """None, a blank string or an empty list. ``False`` is a value, not a gap."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set)):
        return len(value) == 0
    return False


# ── Key resolution ────────────────────────────────────────────────────────────

def fold_key(key: str) -> str:
    return _KEY_FOLD_RE.sub("", str(key)).lower()


def _index(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Folded key -> value. A non-empty value wins over an empty duplicate."""
    index: dict[str, Any] = {}
    for key, value in raw.items():
        folded = fold_key(key)
        if folded not in index or is_empty(index[folded]):
            index[folded] = value
    return index


def lookup(raw: Mapping[str, Any], field: str, index: Optional[dict[str, Any]] = None) -> Any:
    """Return the first non-empty value among ``field``'s aliases, or None."""
    if index is None:
        index = _index(raw)
    for alias in FIELD_ALIASES.get(field, [field]):
        value = index.get(fold_key(alias))
        if not is_empty(value):
            return value
    return None


# ── Value coercion ────────────────────────────────────────────────────────────

def to_scalar(value: Any) -> Optional[str]:
    if value is None or isinstance(value, Mapping):
        return None
    if isinstance(value, (list, tuple)):
        for item in value:
            text = to_scalar(item)
            if text:
                return text
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    text = str(value).strip()
    return text or None


def _clean_items(items: Iterable[Any]) -> list[str]:
    out: list[str] = []
    for item in items:
        if item is None or isinstance(item, (Mapping, list, tuple)):
            continue
        text = str(item).strip()
        if text:
            out.append(text)
    return out


def _loads_list(text: str) -> Optional[list[str]]:
    for candidate in (text, text.replace("'", '"')):
        try:
            parsed = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(parsed, list):
            return _clean_items(parsed)
        if isinstance(parsed, dict):
            return _clean_items(parsed.values())
    return None


def parse_list(value: Any) -> list[str]:
    """Coerce a list-like value into a list of trimmed, non-empty strings.

    Accepts a real list, a bracketed structured-list string (JSON, or
    Python-style with single quotes), a comma- or semicolon-separated string,
    or a single value.
    """
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return _clean_items(value)
    text = str(value).strip()
    if not text:
        return []
    if text.startswith("[") and text.endswith("]"):
        parsed = _loads_list(text)
        if parsed is not None:
            return parsed
        inner = text[1:-1]
        return [p for p in (part.strip().strip("\"'").strip() for part in inner.split(",")) if p]
    if "," in text:
        return [p.strip() for p in text.split(",") if p.strip()]
    if ";" in text:
        return [p.strip() for p in text.split(";") if p.strip()]
    return [text]


def parse_flag(value: Any) -> Optional[bool]:
    """1/"1"/"true" -> True, 0/"0"/"false" -> False, anything else -> None."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        if value == 1:
            return True
        if value == 0:
            return False
        return None
    if isinstance(value, str):
        low = value.strip().lower()
        if low in _TRUE_STRINGS:
            return True
        if low in _FALSE_STRINGS:
            return False
    return None


def _parse_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def align_images(images: list[str], image_url: Optional[str]) -> tuple[list[str], Optional[str]]:
    """Keep ``image_url`` equal to ``images[0]``."""
    if image_url:
        if not images or images[0] != image_url:
            images = [image_url] + [i for i in images if i != image_url]
    elif images:
        image_url = images[0]
    return images, image_url


# ── Normalize ─────────────────────────────────────────────────────────────────

def normalize(raw: Mapping[str, Any], source: Optional[str] = None) -> PlantRecord:
    """Map an arbitrary raw plant mapping onto a fully shaped PlantRecord."""
    index = _index(raw)
    values: dict[str, Any] = {}

    for field in SCALAR_FIELDS:
        values[field] = to_scalar(lookup(raw, field, index))
    for field in LIST_FIELDS:
        values[field] = parse_list(lookup(raw, field, index))
    for field in FLAG_FIELDS:
        values[field] = parse_flag(lookup(raw, field, index))

    if not values["scientific_name"]:
        parts = [p for p in (values["genus"], values["species"]) if p]
        values["scientific_name"] = " ".join(parts) or None

    values["images"], values["image_url"] = align_images(values["images"], values["image_url"])

    raw_source = source or to_scalar(lookup(raw, "source", index))
    values["source"] = raw_source if raw_source in _VALID_SOURCES else "db"
    values["data_sources"] = parse_list(lookup(raw, "data_sources", index))
    values["id"] = _parse_id(lookup(raw, "id", index))

    return PlantRecord(**values)


def normalize_row(plant: Plant) -> PlantRecord:
    """Normalize a stored row. Records read from storage are tagged ``db``."""
    mapper = inspect(plant).mapper
    raw = {attr.key: getattr(plant, attr.key) for attr in mapper.column_attrs}
    return normalize(raw, source="db")


# ── Storage encoding ──────────────────────────────────────────────────────────

def serialize_list(values: list[str]) -> Optional[str]:
    """Structured-list text for storage. Empty lists are stored as NULL."""
    if not values:
        return None
    return json.dumps(values, ensure_ascii=False)


def record_to_row(record: PlantRecord, fields: Optional[Iterable[str]] = None) -> dict[str, Any]:
    """Column values for ``record``. Restrict to ``fields`` when given."""
    wanted = set(fields) if fields is not None else None
    row: dict[str, Any] = {}
    for field in SCALAR_FIELDS + FLAG_FIELDS:
        if wanted is None or field in wanted:
            row[field] = getattr(record, field)
    for field in LIST_FIELDS:
        if wanted is None or field in wanted:
            row[field] = serialize_list(getattr(record, field))
    if wanted is None or "source" in wanted:
        row["source"] = record.source
    if wanted is None or "data_sources" in wanted:
        row["data_sources"] = serialize_list(record.data_sources)
    return row

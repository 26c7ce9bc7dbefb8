"""
Enrichment merger: fill the gaps of a base record from a candidate record.

Policy
------
- Scalars and flags: adopt the candidate value only where the base is empty
  (None, blank string). A populated base value is never replaced, whatever the
  candidate's source. Stored data is protected by always being the base.
- Lists: an empty base list takes the candidate list; otherwise the result is
  the base list followed by candidate items not already present (exact match).
- ``images`` and ``image_url`` are re-aligned after every merge.
- Provenance (``source``, ``data_sources``) follows the last contributing
  candidate and is not reported in ``changed_fields``.

Several candidates are applied with ``fold``: the merged output of one pass is
the base of the next, in the order given.
"""
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Optional

from app.schemas.plant import DATA_FIELDS, FLAG_FIELDS, LIST_FIELDS, SCALAR_FIELDS, PlantRecord
from app.services.normalizer import align_images, is_empty


@dataclass
class MergeResult:
    merged: PlantRecord
    changed_fields: set[str] = field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.changed_fields)

    def then(self, candidate: Optional[PlantRecord]) -> "MergeResult":
        """Merge ``candidate`` into this result, keeping every changed field name."""
        step = merge(self.merged, candidate)
        return MergeResult(merged=step.merged, changed_fields=self.changed_fields | step.changed_fields)


def union_lists(base: list[str], extra: list[str]) -> list[str]:
    result = list(base)
    seen = set(result)
    for item in extra:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def merge(base: PlantRecord, candidate: Optional[PlantRecord]) -> MergeResult:
    """Fill ``base``'s empty fields from ``candidate``. ``base`` is not mutated."""
    if candidate is None:
        return MergeResult(merged=base.model_copy(deep=True))

    values = base.model_dump()

    for name in SCALAR_FIELDS + FLAG_FIELDS:
        if is_empty(values[name]) and not is_empty(getattr(candidate, name)):
            values[name] = getattr(candidate, name)

    for name in LIST_FIELDS:
        incoming = getattr(candidate, name)
        if not incoming:
            continue
        values[name] = list(incoming) if not values[name] else union_lists(values[name], incoming)

    values["images"], values["image_url"] = align_images(values["images"], values["image_url"])

    changed = {name for name in DATA_FIELDS if values[name] != getattr(base, name)}

    if changed:
        values["source"] = candidate.source
        values["data_sources"] = union_lists(
            base.data_sources, union_lists(candidate.data_sources, [candidate.source])
        )

    return MergeResult(merged=PlantRecord(**values), changed_fields=changed)


def fold(base: PlantRecord, candidates: Iterable[Optional[PlantRecord]]) -> MergeResult:
    """Apply ``merge`` left to right, accumulating the changed field names."""
    result = MergeResult(merged=base.model_copy(deep=True))
    for candidate in candidates:
        result = result.then(candidate)
    return result


def missing_fields(record: PlantRecord, fields: Iterable[str]) -> list[str]:
    return [name for name in fields if is_empty(getattr(record, name))]

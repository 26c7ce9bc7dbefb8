from typing import Literal, Optional

from pydantic import BaseModel, Field

PlantSource = Literal["db", "csv", "perenual", "trefle", "wikipedia"]

SCALAR_FIELDS: tuple[str, ...] = (
    "family",
    "genus",
    "species",
    "scientific_name",
    "common_name",
    "growth_rate",
    "hardiness_zones",
    "height",
    "width",
    "type",
    "foliage",
    "leaf",
    "flower",
    "ripen",
    "reproduction",
    "ph",
    "habitat",
    "habitat_range",
    "other_uses",
    "pfaf",
    "description",
    "image_url",
)

LIST_FIELDS: tuple[str, ...] = (
    "pollinators",
    "soils",
    "ph_split",
    "preferences",
    "tolerances",
    "images",
)

FLAG_FIELDS: tuple[str, ...] = ("edibility", "medicinal")

# Fields the merger fills and the upserter writes. Provenance is tracked apart.
DATA_FIELDS: tuple[str, ...] = SCALAR_FIELDS + LIST_FIELDS + FLAG_FIELDS


class PlantRecord(BaseModel):
    """Canonical plant record.

    Scalars are ``Optional[str]``, list-like fields are ``list[str]`` and the
    two flags are tri-state (``None`` means unknown). Every source shape is
    turned into this model once, by ``app.services.normalizer.normalize``.
    """

    id: Optional[int] = None

    family: Optional[str] = None
    genus: Optional[str] = None
    species: Optional[str] = None
    scientific_name: Optional[str] = None
    common_name: Optional[str] = None

    growth_rate: Optional[str] = None
    hardiness_zones: Optional[str] = None
    height: Optional[str] = None
    width: Optional[str] = None
    type: Optional[str] = None
    foliage: Optional[str] = None
    leaf: Optional[str] = None
    flower: Optional[str] = None
    ripen: Optional[str] = None
    reproduction: Optional[str] = None
    ph: Optional[str] = None
    habitat: Optional[str] = None
    habitat_range: Optional[str] = None
    other_uses: Optional[str] = None
    pfaf: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None

    pollinators: list[str] = Field(default_factory=list)
    soils: list[str] = Field(default_factory=list)
    ph_split: list[str] = Field(default_factory=list)
    preferences: list[str] = Field(default_factory=list)
    tolerances: list[str] = Field(default_factory=list)
    images: list[str] = Field(default_factory=list)

    edibility: Optional[bool] = None
    medicinal: Optional[bool] = None

    source: PlantSource = "db"
    data_sources: list[str] = Field(default_factory=list)

    def identity_label(self) -> str:
        return self.scientific_name or self.common_name or str(self.id)


class PlantListResponse(BaseModel):
    items: list[PlantRecord]
    total: int
    page: int
    per_page: int


class CatalogConfig(BaseModel):
    use_db_first: bool
    translation_enabled: bool
    translate_target: str

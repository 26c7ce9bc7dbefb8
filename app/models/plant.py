from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base

PLANT_SOURCES = ("db", "csv", "perenual", "trefle", "wikipedia")


class Plant(Base):
    __tablename__ = "plants"
    __table_args__ = (
        # Uniqueness is enforced by the upserter's identity rule, not here.
        CheckConstraint(
            "common_name IS NOT NULL OR (genus IS NOT NULL AND species IS NOT NULL)",
            name="ck_plants_has_identity",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # Identity
    family: Mapped[Optional[str]] = mapped_column(String(200))
    genus: Mapped[Optional[str]] = mapped_column(String(200), index=True)
    species: Mapped[Optional[str]] = mapped_column(String(200), index=True)
    scientific_name: Mapped[Optional[str]] = mapped_column(String(400))
    common_name: Mapped[Optional[str]] = mapped_column(String(200), index=True)

    # Descriptive scalars
    growth_rate: Mapped[Optional[str]] = mapped_column(Text)
    hardiness_zones: Mapped[Optional[str]] = mapped_column(Text)
    height: Mapped[Optional[str]] = mapped_column(Text)
    width: Mapped[Optional[str]] = mapped_column(Text)
    type: Mapped[Optional[str]] = mapped_column(Text)
    foliage: Mapped[Optional[str]] = mapped_column(Text)
    leaf: Mapped[Optional[str]] = mapped_column(Text)
    flower: Mapped[Optional[str]] = mapped_column(Text)
    ripen: Mapped[Optional[str]] = mapped_column(Text)
    reproduction: Mapped[Optional[str]] = mapped_column(Text)
    ph: Mapped[Optional[str]] = mapped_column(Text)
    habitat: Mapped[Optional[str]] = mapped_column(Text)
    habitat_range: Mapped[Optional[str]] = mapped_column(Text)
    other_uses: Mapped[Optional[str]] = mapped_column(Text)
    pfaf: Mapped[Optional[str]] = mapped_column(Text)
    description: Mapped[Optional[str]] = mapped_column(Text)
    image_url: Mapped[Optional[str]] = mapped_column(Text)

    # Lists, stored as JSON text (decoded by the field normalizer)
    pollinators: Mapped[Optional[str]] = mapped_column(Text)
    soils: Mapped[Optional[str]] = mapped_column(Text)
    ph_split: Mapped[Optional[str]] = mapped_column(Text)
    preferences: Mapped[Optional[str]] = mapped_column(Text)
    tolerances: Mapped[Optional[str]] = mapped_column(Text)
    images: Mapped[Optional[str]] = mapped_column(Text)

    # Tri-state flags: NULL means unknown
    edibility: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    medicinal: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)

    # Source tracking
    source: Mapped[str] = mapped_column(
        Enum(*PLANT_SOURCES, name="plant_source_enum"), default="db"
    )
    data_sources: Mapped[Optional[str]] = mapped_column(Text)  # JSON list of contributing sources

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

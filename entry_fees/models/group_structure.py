"""
Module: entry_fees.models.group_structure
Responsibility: ORM persistence for versioned source -> billing group maps.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one active version (partial unique index on is_active).
    - source_group_id is unique per structure version.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from entry_fees.db.base import Base, UUIDString
from entry_fees.db.errors import MAPPING_SOURCE_UNIQUE, SINGLE_ACTIVE_STRUCTURE
from entry_fees.domain.dtos import GroupMapping, GroupStructureInfo


class GroupStructure(Base):
    """One version of the billing hierarchy."""

    __tablename__ = "group_structures"

    __table_args__ = (
        Index(
            SINGLE_ACTIVE_STRUCTURE,
            "is_active",
            unique=True,
            postgresql_where=text("is_active"),
            sqlite_where=text("is_active = 1"),
        ),
        Index("idx_group_structures_created_at", "created_at"),
    )

    label: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def __repr__(self) -> str:
        return f"<GroupStructure {self.id} active={self.is_active}>"

    def to_dto(self) -> GroupStructureInfo:
        return GroupStructureInfo(
            id=self.id,
            label=self.label,
            created_at=self.created_at,
            is_active=bool(self.is_active),
        )


class GroupStructureMapping(Base):
    """source team -> billing parent, for one structure version."""

    __tablename__ = "group_structure_map"

    __table_args__ = (
        UniqueConstraint("group_structure_id", "source_group_id", name=MAPPING_SOURCE_UNIQUE),
    )

    group_structure_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("group_structures.id", ondelete="CASCADE"),
        nullable=False,
    )

    source_group_id: Mapped[str] = mapped_column(String(64), nullable=False)

    billing_group_id: Mapped[str] = mapped_column(String(64), nullable=False)

    def to_dto(self) -> GroupMapping:
        return GroupMapping(
            source_group_id=self.source_group_id,
            billing_group_id=self.billing_group_id,
        )

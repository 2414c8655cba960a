"""
Group structures -- versioned source -> billing group maps.

Responsibility:
    ``GroupStructureResolver`` answers "which billing group receives the
    statement for this team under structure version V?".
    ``GroupStructureService`` creates, activates and reads versions.

Architecture position:
    Kernel > Services -- imperative shell.  The resolver is consulted by
    StatementGenerator; the service is driven by administrative callers.

Invariants enforced:
    - Unmapped teams bill themselves: resolve() falls back to the source
      group id, never raises.
    - A source group is mapped at most once per version, checked before
      storage and again by the unique constraint.
    - At most one active version.  Activation deactivates the previous
      version in the same transaction, before the target is switched on,
      so the partial unique index never sees two active rows.

Failure modes:
    - DuplicateMappingSourceError: repeated source_group_id in mappings.
    - GroupStructureNotFoundError: unknown structure id.
"""

from collections.abc import Callable, Iterable, Mapping
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from entry_fees.db.errors import translate_integrity_error
from entry_fees.domain.dtos import GroupMapping, GroupStructureInfo, Page
from entry_fees.exceptions import (
    DuplicateMappingSourceError,
    GroupStructureNotFoundError,
)
from entry_fees.logging_config import get_logger
from entry_fees.models.group_structure import GroupStructure, GroupStructureMapping
from entry_fees.selectors.base import after_cursor, encode_cursor
from entry_fees.services.base import BaseService

logger = get_logger("services.group_structure")


class GroupStructureResolver:
    """
    Resolve source groups to billing groups for a structure version.

    Mappings are loaded once per structure and cached for the lifetime of
    the resolver, which is meant to live for one batch or one transaction.
    """

    def __init__(self, session):
        self.session = session
        self._cache: dict[UUID, dict[str, str]] = {}

    def billing_map(self, group_structure_id: UUID) -> dict[str, str]:
        """source_group_id -> billing_group_id for one version."""
        cached = self._cache.get(group_structure_id)
        if cached is not None:
            return cached

        rows = self.session.execute(
            select(
                GroupStructureMapping.source_group_id,
                GroupStructureMapping.billing_group_id,
            ).where(GroupStructureMapping.group_structure_id == group_structure_id)
        ).all()
        mapping = {source: billing for source, billing in rows}
        self._cache[group_structure_id] = mapping

        logger.debug(
            "group_structure_loaded",
            extra={"group_structure_id": str(group_structure_id), "mappings": len(mapping)},
        )
        return mapping

    def resolve(self, group_structure_id: UUID, source_group_id: str) -> str:
        return self.billing_map(group_structure_id).get(source_group_id, source_group_id)

    def resolver_for(self, group_structure_id: UUID) -> Callable[[str], str]:
        """Bind a version, returning a plain source -> billing function."""
        mapping = self.billing_map(group_structure_id)
        return lambda source_group_id: mapping.get(source_group_id, source_group_id)

    def clear(self) -> None:
        self._cache.clear()


def _coerce_mapping(item: GroupMapping | Mapping | tuple) -> GroupMapping:
    if isinstance(item, GroupMapping):
        return item
    if isinstance(item, Mapping):
        return GroupMapping(
            source_group_id=str(item["source_group_id"]),
            billing_group_id=str(item["billing_group_id"]),
        )
    source, billing = item
    return GroupMapping(source_group_id=str(source), billing_group_id=str(billing))


class GroupStructureService(BaseService[GroupStructure]):
    """Create, activate and read group structure versions."""

    def _get_or_raise(self, group_structure_id: UUID) -> GroupStructure:
        structure = self.session.get(GroupStructure, group_structure_id)
        if structure is None:
            raise GroupStructureNotFoundError(str(group_structure_id))
        return structure

    def _deactivate_all(self, except_id: UUID | None = None) -> None:
        stmt = update(GroupStructure).where(GroupStructure.is_active.is_(True))
        if except_id is not None:
            stmt = stmt.where(GroupStructure.id != except_id)
        self.session.execute(stmt.values(is_active=False))
        self.session.flush()

    def create_group_structure(
        self,
        label: str | None,
        mappings: Iterable[GroupMapping | Mapping | tuple],
        activate: bool = False,
    ) -> GroupStructureInfo:
        """
        Create a new structure version with its mappings.

        Raises:
            DuplicateMappingSourceError: a source group appears twice.
        """
        items = [_coerce_mapping(m) for m in mappings]
        seen: set[str] = set()
        for item in items:
            if item.source_group_id in seen:
                raise DuplicateMappingSourceError(item.source_group_id)
            seen.add(item.source_group_id)

        if activate:
            self._deactivate_all()

        structure = GroupStructure(
            label=label,
            created_at=self._clock.now(),
            is_active=activate,
        )
        self.session.add(structure)
        self.session.flush()

        self.session.add_all(
            GroupStructureMapping(
                group_structure_id=structure.id,
                source_group_id=item.source_group_id,
                billing_group_id=item.billing_group_id,
            )
            for item in items
        )
        try:
            self.session.flush()
        except IntegrityError as exc:
            raise translate_integrity_error(exc) from exc

        logger.info(
            "group_structure_created",
            extra={
                "group_structure_id": str(structure.id),
                "mappings": len(items),
                "activated": activate,
            },
        )
        return structure.to_dto()

    def activate_group_structure(self, group_structure_id: UUID) -> GroupStructureInfo:
        """Make ``group_structure_id`` the single active version."""
        structure = self._get_or_raise(group_structure_id)
        if structure.is_active:
            return structure.to_dto()

        self._deactivate_all(except_id=group_structure_id)
        self.session.execute(
            update(GroupStructure)
            .where(GroupStructure.id == group_structure_id)
            .values(is_active=True)
        )
        self.session.flush()
        self.session.refresh(structure)

        logger.info(
            "group_structure_activated",
            extra={"group_structure_id": str(group_structure_id)},
        )
        return structure.to_dto()

    def get_group_structure(self, group_structure_id: UUID) -> GroupStructureInfo:
        return self._get_or_raise(group_structure_id).to_dto()

    def get_active_group_structure(self) -> GroupStructureInfo | None:
        structure = self.session.execute(
            select(GroupStructure).where(GroupStructure.is_active.is_(True))
        ).scalar_one_or_none()
        return structure.to_dto() if structure is not None else None

    def get_mappings(self, group_structure_id: UUID) -> tuple[GroupMapping, ...]:
        self._get_or_raise(group_structure_id)
        rows = self.session.execute(
            select(GroupStructureMapping)
            .where(GroupStructureMapping.group_structure_id == group_structure_id)
            .order_by(GroupStructureMapping.source_group_id)
        ).scalars()
        return tuple(row.to_dto() for row in rows)

    def list_group_structures(
        self,
        is_active: bool | None = None,
        limit: int | None = None,
        cursor: str | None = None,
    ) -> Page[GroupStructureInfo]:
        """Newest first, keyset-paginated on (created_at, id)."""
        page_size = self._settings.clamp_limit(limit)
        stmt = select(GroupStructure)
        if is_active is not None:
            stmt = stmt.where(GroupStructure.is_active.is_(is_active))
        if cursor:
            stmt = stmt.where(after_cursor(GroupStructure.created_at, GroupStructure.id, cursor))
        stmt = stmt.order_by(GroupStructure.created_at.desc(), GroupStructure.id.desc())

        rows = list(self.session.execute(stmt.limit(page_size + 1)).scalars())
        has_more = len(rows) > page_size
        rows = rows[:page_size]
        next_cursor = encode_cursor(rows[-1].created_at, rows[-1].id) if has_more else None
        return Page(items=tuple(r.to_dto() for r in rows), next_cursor=next_cursor)

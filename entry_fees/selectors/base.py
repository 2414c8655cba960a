"""
Module: entry_fees.selectors.base
Responsibility: Abstract base class for read-only query selectors and the
    keyset cursor codec shared by every paginated listing.
Architecture position: Kernel > Selectors.  May import from db/, models/
    and domain/.  MUST NOT import from services/.

Invariants enforced:
    - Read-only access: selectors never add, delete, flush or commit.
    - DTO return convention: selectors return frozen dataclasses, never ORM
      instances.

Cursor format:
    ``<iso timestamp>|<uuid>`` of the last row returned.  Listings are
    ordered newest first on (created_at, id), so the next page starts
    strictly after that pair.
"""

from abc import ABC
from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from entry_fees.db.base import Base
from entry_fees.exceptions import InvalidCursorError
from entry_fees.settings import EngineSettings, get_settings

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only
        queries, and return DTOs or computed results.
    """

    def __init__(self, session: Session, settings: EngineSettings | None = None):
        self.session = session
        self._settings = settings or get_settings()


def encode_cursor(created_at: datetime, row_id: UUID) -> str:
    return f"{created_at.isoformat()}|{row_id}"


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    """
    Raises:
        InvalidCursorError: malformed cursor.
    """
    try:
        ts, raw_id = cursor.split("|", 1)
        return datetime.fromisoformat(ts), UUID(raw_id)
    except ValueError:
        raise InvalidCursorError(cursor) from None


def after_cursor(created_col, id_col, cursor: str):
    """WHERE clause selecting rows strictly after ``cursor`` in newest-first order."""
    created_at, row_id = decode_cursor(cursor)
    return or_(
        created_col < created_at,
        and_(created_col == created_at, id_col < row_id),
    )

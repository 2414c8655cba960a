"""
BaseService -- abstract base for all entry fees services.

Responsibility:
    Common constructor and session-handling contract.  Every concrete
    service receives a SQLAlchemy ``Session`` and uses ``session.flush()``,
    never ``session.commit()``.

Invariants enforced:
    - Transaction boundaries belong to the caller (``transaction_scope`` or
      a coordinator).  Services flush within that transaction and never
      commit or roll back themselves, so a multi-step pipeline commits or
      aborts as one unit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from entry_fees.db.base import Base
from entry_fees.domain.clock import Clock, SystemClock
from entry_fees.settings import EngineSettings, get_settings

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
    ):
        self.session = session
        self._clock = clock or SystemClock()
        self._settings = settings or get_settings()

"""
Module: entry_fees.db.errors
Responsibility: Translate raw storage constraint violations into the typed
    conflict vocabulary so callers never see a driver exception.
Architecture position: Kernel > DB.  Imports exceptions only.

SQLSTATE classes handled:
    23P01  exclusion_violation  -> PeriodOverlapError (detected_by="constraint")
    23505  unique_violation     -> DuplicateMappingSourceError /
                                   StatementsAlreadyGeneratedError / StorageConstraintError
    23514  check_violation      -> InvalidPeriodRangeError / StorageConstraintError

SQLite reports neither SQLSTATE nor constraint names for unique indexes, so
its messages are matched on the constrained columns instead.
"""

from sqlalchemy.exc import IntegrityError

from entry_fees.exceptions import (
    DuplicateMappingSourceError,
    EntryFeesError,
    InvalidPeriodRangeError,
    PeriodOverlapError,
    StatementsAlreadyGeneratedError,
    StorageConstraintError,
)

EXCLUSION_VIOLATION = "23P01"
UNIQUE_VIOLATION = "23505"
CHECK_VIOLATION = "23514"

# Constraint names declared by the models.
PERIOD_NO_OVERLAP = "ex_entry_fees_period_no_overlap"
PERIOD_RANGE_CHECK = "ck_entry_fees_period_range"
MAPPING_SOURCE_UNIQUE = "uq_group_structure_map_source"
SINGLE_ACTIVE_STRUCTURE = "uq_group_structures_single_active"
STATEMENT_BUCKET_UNIQUE = "uq_statement_bucket"
STATEMENT_NUMBER_UNIQUE = "uq_statement_number"

KNOWN_CONSTRAINTS = (
    PERIOD_NO_OVERLAP,
    PERIOD_RANGE_CHECK,
    MAPPING_SOURCE_UNIQUE,
    SINGLE_ACTIVE_STRUCTURE,
    STATEMENT_BUCKET_UNIQUE,
    STATEMENT_NUMBER_UNIQUE,
)

_SQLITE_COLUMN_HINTS = {
    "group_structure_map.group_structure_id, group_structure_map.source_group_id": MAPPING_SOURCE_UNIQUE,
    "group_structures.is_active": SINGLE_ACTIVE_STRUCTURE,
    "entry_fees_statement.group_key, entry_fees_statement.currency": STATEMENT_BUCKET_UNIQUE,
    "entry_fees_statement.payment_list_id, entry_fees_statement.statement_number": (
        STATEMENT_NUMBER_UNIQUE
    ),
}


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = exc.orig
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def _constraint_name(exc: IntegrityError) -> str | None:
    diag = getattr(exc.orig, "diag", None)
    name = getattr(diag, "constraint_name", None)
    if name:
        return name

    message = str(exc.orig)
    for known in KNOWN_CONSTRAINTS:
        if known in message:
            return known
    for columns, constraint in _SQLITE_COLUMN_HINTS.items():
        if columns in message:
            return constraint
    return None


def translate_integrity_error(
    exc: IntegrityError,
    *,
    start_date: str | None = None,
    end_date: str | None = None,
    source_group_id: str | None = None,
    payment_list_id: str | None = None,
) -> EntryFeesError:
    """
    Map an IntegrityError onto the typed error vocabulary.

    Keyword arguments supply the business context the driver error lacks.
    Unknown violations fall back to StorageConstraintError, which still
    carries code CONFLICT.
    """
    sqlstate = _sqlstate(exc)
    constraint = _constraint_name(exc)

    if sqlstate == EXCLUSION_VIOLATION or constraint == PERIOD_NO_OVERLAP:
        return PeriodOverlapError(
            start_date=start_date or "?",
            end_date=end_date or "?",
            detected_by="constraint",
        )

    if constraint == PERIOD_RANGE_CHECK:
        return InvalidPeriodRangeError(start_date or "?", end_date or "?")

    if constraint == MAPPING_SOURCE_UNIQUE and source_group_id is not None:
        return DuplicateMappingSourceError(source_group_id)

    if constraint in (STATEMENT_BUCKET_UNIQUE, STATEMENT_NUMBER_UNIQUE) and payment_list_id:
        return StatementsAlreadyGeneratedError(payment_list_id)

    return StorageConstraintError(
        constraint=constraint,
        sqlstate=sqlstate,
        detail=str(exc.orig).splitlines()[0] if exc.orig is not None else str(exc),
    )

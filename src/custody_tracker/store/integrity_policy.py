"""
Integrity policy for classifying IntegrityError exceptions raised by ledger writes.

Known constraint violations become ConflictError; anything else is an
unexpected store failure and becomes PersistenceError.
"""

from enum import Enum
from typing import Optional, Dict, Any
from sqlalchemy.exc import IntegrityError  # type: ignore

from ..domain.errors import ConflictError, CustodyError, PersistenceError
from ..utils.logging_config import get_logger


logger = get_logger("database")


class ExpectedIntegrityTag(Enum):
    """Tags for expected integrity constraint violations."""

    ANNOTATION_LANGUAGE_DUPLICATE = "annotation_language_duplicate"
    MOVEMENT_ID_DUPLICATE = "movement_id_duplicate"
    REFERENCE_MISSING = "reference_missing"


# Map constraint names to their expected tags.
# SQLite reports column lists, PostgreSQL reports constraint names.
CONSTRAINT_TAG_MAP: Dict[str, ExpectedIntegrityTag] = {
    "asset_movement_annotations.movement_id, asset_movement_annotations.lang_code": (
        ExpectedIntegrityTag.ANNOTATION_LANGUAGE_DUPLICATE
    ),
    "uq_movement_annotation_lang": ExpectedIntegrityTag.ANNOTATION_LANGUAGE_DUPLICATE,
    "asset_movements.id": ExpectedIntegrityTag.MOVEMENT_ID_DUPLICATE,
    "asset_movements_pkey": ExpectedIntegrityTag.MOVEMENT_ID_DUPLICATE,
}

CONFLICT_MESSAGES: Dict[ExpectedIntegrityTag, str] = {
    ExpectedIntegrityTag.ANNOTATION_LANGUAGE_DUPLICATE: "annotation language already exists for movement",
    ExpectedIntegrityTag.MOVEMENT_ID_DUPLICATE: "movement id already exists",
    ExpectedIntegrityTag.REFERENCE_MISSING: "a referenced asset, location or user no longer exists",
}


def _error_message(exc: IntegrityError) -> str:
    return str(exc.orig) if exc.orig else str(exc)


def is_unique_violation(exc: IntegrityError) -> bool:
    """Check if the IntegrityError is a unique constraint violation."""
    error_msg = _error_message(exc)
    return "UNIQUE constraint failed" in error_msg or "duplicate key value" in error_msg


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    """Check if the IntegrityError is a foreign key violation."""
    error_msg = _error_message(exc)
    return "FOREIGN KEY constraint failed" in error_msg or "violates foreign key" in error_msg


def extract_constraint_name(exc: IntegrityError) -> Optional[str]:
    """Extract constraint name from IntegrityError."""
    error_msg = _error_message(exc)

    # SQLite format: "UNIQUE constraint failed: table.column1, table.column2"
    if "UNIQUE constraint failed:" in error_msg:
        return error_msg.split("UNIQUE constraint failed:", 1)[1].strip()

    # PostgreSQL format: 'duplicate key value violates unique constraint "name"'
    if 'unique constraint "' in error_msg:
        return error_msg.split('unique constraint "', 1)[1].split('"', 1)[0]

    return None


def classify_integrity_error(exc: IntegrityError) -> Optional[ExpectedIntegrityTag]:
    """
    Classify an IntegrityError to determine if it's an expected constraint violation.

    Args:
        exc: The IntegrityError exception to classify

    Returns:
        ExpectedIntegrityTag if this is an expected violation, None otherwise
    """
    if is_foreign_key_violation(exc):
        return ExpectedIntegrityTag.REFERENCE_MISSING

    if not is_unique_violation(exc):
        return None

    constraint_name = extract_constraint_name(exc)
    if constraint_name is None:
        return None

    return CONSTRAINT_TAG_MAP.get(constraint_name)


def to_custody_error(exc: IntegrityError, context: Dict[str, Any]) -> CustodyError:
    """
    Convert an IntegrityError into the domain error callers should see.

    Args:
        exc: The IntegrityError raised while flushing or committing
        context: Operation context for logging (operation, entity_id, ...)
    """
    tag = classify_integrity_error(exc)
    if tag is not None:
        logger.info(
            f"Integrity violation mapped to conflict: {tag.value}",
            extra={
                "integrity_tag": tag.value,
                "constraint_name": extract_constraint_name(exc),
                "operation": context.get("operation", "unknown"),
                "entity_id": context.get("entity_id"),
            },
        )
        return ConflictError(CONFLICT_MESSAGES[tag], reason=tag.value)

    log_unexpected_violation(exc, context)
    return PersistenceError("failed to persist movement")


def log_unexpected_violation(exc: IntegrityError, context: Dict[str, Any]) -> None:
    """
    Log an unexpected integrity violation at ERROR level.

    Args:
        exc: The IntegrityError that was not expected
        context: Additional context for logging
    """
    logger.error(
        "Unexpected integrity violation",
        extra={
            "constraint_name": extract_constraint_name(exc),
            "operation": context.get("operation", "unknown"),
            "entity_id": context.get("entity_id"),
            "error_message": str(exc),
        },
        exc_info=exc,
    )

"""Typed errors raised by the custody domain.

Each error carries a machine readable ``code`` and a ``detail`` mapping
(entity, id and similar) that the API layer turns into Problem Details.
"""

from typing import Any, Dict, Optional


class CustodyError(Exception):
    """Base exception for all custody ledger failures."""

    code = "custody_error"

    def __init__(self, message: str, **detail: Any):
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = {
            key: str(value) if value is not None else None for key, value in detail.items()
        }


class NotFoundError(CustodyError):
    """A referenced asset, location, user or movement does not exist."""

    code = "not_found"

    def __init__(self, entity: str, entity_id: Any, message: Optional[str] = None):
        super().__init__(
            message or f"{entity} {entity_id} not found", entity=entity, id=entity_id
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidDestinationError(CustodyError):
    """Neither or both destination families were supplied."""

    code = "invalid_destination"

    def __init__(self, message: str = "exactly one of to_location_id or to_user_id is required"):
        super().__init__(message)


class NoOpMoveError(CustodyError):
    """The destination equals the asset's current state in the same family."""

    code = "no_op_move"

    def __init__(self, family: str, target_id: Any):
        super().__init__(
            f"asset is already at {family} {target_id}", family=family, id=target_id
        )
        self.family = family
        self.target_id = target_id


class ConflictError(CustodyError):
    """Uniqueness violation, stale asset state, or amend of a superseded movement."""

    code = "conflict"


class PersistenceError(CustodyError):
    """The store failed; the unit of work was rolled back."""

    code = "persistence_error"


class InvalidPayloadError(CustodyError):
    """Malformed date or payload shape."""

    code = "invalid_payload"

"""
Pure transfer rules for the custody ledger.

Every function here is deterministic and side-effect free. Lookups against
stores happen in the validator and services; these functions only decide.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional, Sequence, Tuple, Union
from uuid import UUID

from ..core.enums import MovementType
from .errors import ConflictError, InvalidDestinationError, InvalidPayloadError, NoOpMoveError
from .movements import (
    AnnotationInput,
    ApprovedTransfer,
    AssetState,
    Destination,
    MovementAnnotation,
    MovementRecord,
    ToCustodian,
    ToLocation,
)


def coerce_optional_id(value: Union[str, UUID, None], field_name: str) -> Optional[UUID]:
    """Parse an optional id, treating empty strings as absent."""
    if value is None or isinstance(value, UUID):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        return UUID(value)
    except ValueError as e:
        raise InvalidPayloadError(f"{field_name} is not a valid id", field=field_name) from e


def resolve_destination(
    to_location_id: Optional[UUID], to_custodian_id: Optional[UUID]
) -> Destination:
    """Turn the two optional destination fields into exactly one destination."""
    if to_location_id is not None and to_custodian_id is not None:
        raise InvalidDestinationError("only one of to_location_id or to_user_id may be set")
    if to_location_id is not None:
        return ToLocation(location_id=to_location_id)
    if to_custodian_id is not None:
        return ToCustodian(custodian_id=to_custodian_id)
    raise InvalidDestinationError()


def ensure_not_noop(
    destination: Destination,
    current_location_id: Optional[UUID],
    current_custodian_id: Optional[UUID],
) -> None:
    """Reject a destination equal to the current state in the same family."""
    if isinstance(destination, ToLocation):
        if destination.location_id == current_location_id:
            raise NoOpMoveError("location", destination.location_id)
    elif destination.custodian_id == current_custodian_id:
        raise NoOpMoveError("custodian", destination.custodian_id)


def build_approved_transfer(
    state: AssetState, destination: Destination, moved_by: UUID, now: datetime
) -> ApprovedTransfer:
    """Record the source fields from the asset's state at validation time."""
    return ApprovedTransfer(
        asset_id=state.asset_id,
        from_location_id=state.location_id,
        from_custodian_id=state.custodian_id,
        destination=destination,
        moved_by=moved_by,
        movement_date=now.astimezone(timezone.utc),
    )


def state_before(movement: Union[ApprovedTransfer, MovementRecord]) -> AssetState:
    """The asset state a movement was derived from."""
    return AssetState(
        asset_id=movement.asset_id,
        location_id=movement.from_location_id,
        custodian_id=movement.from_custodian_id,
    )


def state_after(movement: Union[ApprovedTransfer, MovementRecord]) -> AssetState:
    """
    The asset state once a movement is applied.

    The destination replaces its own family; the other family keeps its source value.
    """
    if movement.to_location_id is not None:
        return AssetState(
            asset_id=movement.asset_id,
            location_id=movement.to_location_id,
            custodian_id=movement.from_custodian_id,
        )
    return AssetState(
        asset_id=movement.asset_id,
        location_id=movement.from_location_id,
        custodian_id=movement.to_custodian_id,
    )


def with_destination(record: MovementRecord, destination: Destination, now: datetime) -> MovementRecord:
    """Copy of a record pointing at a new destination. Source fields are kept."""
    if isinstance(destination, ToLocation):
        changes = {"to_location_id": destination.location_id, "to_custodian_id": None}
    else:
        changes = {"to_location_id": None, "to_custodian_id": destination.custodian_id}
    return record.model_copy(update={**changes, "updated_at": now})


def classify_movement(
    from_location_id: Optional[UUID],
    from_custodian_id: Optional[UUID],
    to_location_id: Optional[UUID],
    to_custodian_id: Optional[UUID],
) -> MovementType:
    """
    Put a movement into exactly one bucket from which fields are populated.

    Checked in order: location to location, location to user, user to
    location, user to user. Anything else has no source and is a new asset.
    """
    if from_location_id is not None and to_location_id is not None:
        return MovementType.LOCATION_TO_LOCATION
    if from_location_id is not None and to_custodian_id is not None:
        return MovementType.LOCATION_TO_USER
    if from_custodian_id is not None and to_location_id is not None:
        return MovementType.USER_TO_LOCATION
    if from_custodian_id is not None and to_custodian_id is not None:
        return MovementType.USER_TO_USER
    return MovementType.NEW_ASSET


def ensure_unique_languages(annotations: Iterable[AnnotationInput]) -> None:
    """A payload may carry at most one annotation per language."""
    seen = set()
    for annotation in annotations:
        if annotation.lang_code in seen:
            raise ConflictError(
                f"duplicate annotation language {annotation.lang_code}",
                lang_code=annotation.lang_code,
            )
        seen.add(annotation.lang_code)


def annotation_order(annotation) -> Tuple[datetime, str]:
    """Sort key giving annotations one stable order: oldest first, then by language."""
    return annotation.created_at, annotation.lang_code


def select_annotation(
    annotations: Sequence[MovementAnnotation],
    lang_code: Optional[str],
    default_lang_code: str,
) -> Optional[MovementAnnotation]:
    """Pick the requested language, then the default language, then the first annotation."""
    if not annotations:
        return None
    by_lang = {annotation.lang_code: annotation for annotation in annotations}
    for candidate in (lang_code, default_lang_code):
        if candidate and candidate in by_lang:
            return by_lang[candidate]
    return annotations[0]


def parse_filter_date(value: Optional[str], field_name: str) -> Optional[date]:
    """Parse a YYYY-MM-DD filter date; empty means no filter."""
    if value is None or not value.strip():
        return None
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError as e:
        raise InvalidPayloadError(
            f"{field_name} must be a date in YYYY-MM-DD format", field=field_name, value=value
        ) from e


def date_range_bounds(
    date_from: Optional[date], date_to: Optional[date]
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """
    Convert inclusive whole-day bounds into a half-open UTC datetime range.

    Returns (start, end) where start is inclusive and end is exclusive.
    """
    start = datetime.combine(date_from, time.min, tzinfo=timezone.utc) if date_from else None
    end = (
        datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc)
        if date_to
        else None
    )
    return start, end

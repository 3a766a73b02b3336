"""Value objects describing custody transfers and ledger records.

All models are immutable. Destinations are a tagged variant: a transfer goes
either to a location or to a custodian, never both.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Literal, Optional, Tuple, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..core.enums import CursorDirection, DestinationKind, SortField, SortOrder


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ToLocation(_Frozen):
    """Transfer destination: a storage location."""

    kind: Literal[DestinationKind.LOCATION] = DestinationKind.LOCATION
    location_id: UUID


class ToCustodian(_Frozen):
    """Transfer destination: a person taking custody."""

    kind: Literal[DestinationKind.CUSTODIAN] = DestinationKind.CUSTODIAN
    custodian_id: UUID


Destination = Union[ToLocation, ToCustodian]


class AssetState(_Frozen):
    """Where an asset is and who holds it. Either side may be unknown."""

    asset_id: UUID
    location_id: Optional[UUID] = None
    custodian_id: Optional[UUID] = None


class ApprovedTransfer(_Frozen):
    """A transfer that passed validation, with its derived source fields."""

    asset_id: UUID
    from_location_id: Optional[UUID] = None
    from_custodian_id: Optional[UUID] = None
    destination: Destination = Field(discriminator="kind")
    moved_by: UUID
    movement_date: datetime

    @property
    def to_location_id(self) -> Optional[UUID]:
        return self.destination.location_id if isinstance(self.destination, ToLocation) else None

    @property
    def to_custodian_id(self) -> Optional[UUID]:
        return self.destination.custodian_id if isinstance(self.destination, ToCustodian) else None


class AnnotationInput(_Frozen):
    """A note to attach to a movement in one language."""

    lang_code: str = Field(min_length=2, max_length=5)
    notes: Optional[str] = None


class MovementAnnotation(_Frozen):
    """A stored per-language note."""

    lang_code: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MovementRecord(_Frozen):
    """One entry of the custody ledger."""

    id: UUID
    asset_id: UUID
    from_location_id: Optional[UUID] = None
    to_location_id: Optional[UUID] = None
    from_custodian_id: Optional[UUID] = None
    to_custodian_id: Optional[UUID] = None
    moved_by: UUID
    movement_date: datetime
    created_at: datetime
    updated_at: datetime
    annotations: Tuple[MovementAnnotation, ...] = ()

    @property
    def destination(self) -> Destination:
        if self.to_location_id is not None:
            return ToLocation(location_id=self.to_location_id)
        return ToCustodian(custodian_id=self.to_custodian_id)


class MovementFilters(_Frozen):
    """Search and filter options shared by every ledger read."""

    search: Optional[str] = None
    asset_id: Optional[UUID] = None
    from_location_id: Optional[UUID] = None
    to_location_id: Optional[UUID] = None
    from_custodian_id: Optional[UUID] = None
    to_custodian_id: Optional[UUID] = None
    moved_by: Optional[UUID] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None


class ListQuery(_Frozen):
    """Offset pagination with sorting."""

    filters: MovementFilters = MovementFilters()
    sort_by: SortField = SortField.MOVEMENT_DATE
    sort_order: SortOrder = SortOrder.DESC
    limit: int = Field(default=10, ge=1)
    offset: int = Field(default=0, ge=0)


class CursorQuery(_Frozen):
    """Keyset pagination relative to a boundary record."""

    filters: MovementFilters = MovementFilters()
    cursor: Optional[UUID] = None
    direction: CursorDirection = CursorDirection.BEFORE
    limit: int = Field(default=10, ge=1)


@dataclass(frozen=True)
class OffsetPage:
    """A page of records from offset pagination."""

    items: List[MovementRecord]
    total: int
    limit: int
    offset: int

    @property
    def current_page(self) -> int:
        return self.offset // self.limit + 1

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit


@dataclass(frozen=True)
class CursorPage:
    """A page of records from cursor pagination."""

    items: List[MovementRecord]
    has_next_page: bool
    next_cursor: Optional[UUID] = None


@dataclass(frozen=True)
class BulkDeleteResult:
    """Outcome of deleting several movements in one unit of work."""

    requested_ids: List[UUID]
    deleted_ids: List[UUID] = field(default_factory=list)

    @property
    def missing_ids(self) -> List[UUID]:
        deleted = set(self.deleted_ids)
        return [movement_id for movement_id in self.requested_ids if movement_id not in deleted]

"""Abstract repository interfaces for data access layer."""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from ..domain.movements import (
    AnnotationInput,
    ApprovedTransfer,
    AssetState,
    BulkDeleteResult,
    CursorPage,
    CursorQuery,
    Destination,
    ListQuery,
    MovementFilters,
    MovementRecord,
    OffsetPage,
)


class AssetStateProvider(ABC):
    """Read access to assets and their current custody state."""

    @abstractmethod
    async def exists(self, asset_id: UUID) -> bool:
        """Check whether an asset exists."""
        pass

    @abstractmethod
    async def current_state(self, asset_id: UUID) -> Optional[AssetState]:
        """Get the asset's current location and custodian, None if the asset is unknown."""
        pass

    async def current_location(self, asset_id: UUID) -> Optional[UUID]:
        """Get the asset's current location id."""
        state = await self.current_state(asset_id)
        return state.location_id if state else None

    async def current_custodian(self, asset_id: UUID) -> Optional[UUID]:
        """Get the asset's current custodian id."""
        state = await self.current_state(asset_id)
        return state.custodian_id if state else None

    @abstractmethod
    async def labels(self, asset_ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Get display labels (asset tags) for the given assets."""
        pass


class LocationDirectory(ABC):
    """Existence checks and names for locations."""

    @abstractmethod
    async def exists(self, location_id: UUID) -> bool:
        """Check whether a location exists."""
        pass

    @abstractmethod
    async def names(self, location_ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Get display names for the given locations."""
        pass


class UserDirectory(ABC):
    """Existence checks and names for users."""

    @abstractmethod
    async def exists(self, user_id: UUID) -> bool:
        """Check whether a user exists."""
        pass

    @abstractmethod
    async def names(self, user_ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Get display names for the given users."""
        pass


class MovementLedger(ABC):
    """
    Append-only store of movement records and their annotations.

    Every write is one unit of work: the record, its annotations and the
    asset-state projection commit together or not at all.
    """

    @abstractmethod
    async def append(
        self, transfer: ApprovedTransfer, annotations: Sequence[AnnotationInput] = ()
    ) -> MovementRecord:
        """Persist an approved transfer and move the asset's state to its destination."""
        pass

    @abstractmethod
    async def append_many(
        self, items: Sequence[Tuple[ApprovedTransfer, Sequence[AnnotationInput]]]
    ) -> List[MovementRecord]:
        """Persist several approved transfers in a single unit of work."""
        pass

    @abstractmethod
    async def amend(
        self,
        movement_id: UUID,
        destination: Optional[Destination],
        annotations: Sequence[AnnotationInput] = (),
    ) -> MovementRecord:
        """
        Point a movement at a new destination and upsert annotations.

        With no destination only the annotations change. Changing the
        destination requires the movement to be its asset's latest.
        """
        pass

    @abstractmethod
    async def remove(self, movement_id: UUID) -> None:
        """Delete a movement and its annotations."""
        pass

    @abstractmethod
    async def remove_many(self, movement_ids: Sequence[UUID]) -> BulkDeleteResult:
        """Delete every listed movement that exists, in one unit of work."""
        pass

    @abstractmethod
    async def get_by_id(self, movement_id: UUID) -> Optional[MovementRecord]:
        """Get a movement by ID."""
        pass

    @abstractmethod
    async def exists(self, movement_id: UUID) -> bool:
        """Check whether a movement exists."""
        pass

    @abstractmethod
    async def latest_for_asset(self, asset_id: UUID) -> Optional[MovementRecord]:
        """Get the asset's most recent movement by (movement_date, id)."""
        pass

    @abstractmethod
    async def list_by_asset(self, asset_id: UUID, query: ListQuery) -> List[MovementRecord]:
        """Get one asset's movements, filtered and sorted."""
        pass

    @abstractmethod
    async def list_paginated(self, query: ListQuery) -> OffsetPage:
        """Get a page of movements using offset pagination."""
        pass

    @abstractmethod
    async def list_by_cursor(self, query: CursorQuery) -> CursorPage:
        """Get a page of movements strictly before or after a boundary movement."""
        pass

    @abstractmethod
    async def count(self, filters: MovementFilters) -> int:
        """Count movements matching the filters."""
        pass

    @abstractmethod
    async def scan(self) -> List[MovementRecord]:
        """Get every movement. Used by statistics."""
        pass


class RepositoryContainer:
    """Container for all repository interfaces to support dependency injection."""

    def __init__(
        self,
        asset_repo: AssetStateProvider,
        location_repo: LocationDirectory,
        user_repo: UserDirectory,
        movement_repo: MovementLedger,
    ):
        self.asset = asset_repo
        self.location = location_repo
        self.user = user_repo
        self.movement = movement_repo

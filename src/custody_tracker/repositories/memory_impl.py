"""In-memory implementations of repository interfaces for testing."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from .interfaces import (
    AssetStateProvider,
    LocationDirectory,
    MovementLedger,
    UserDirectory,
)
from ..core.enums import CursorDirection, SortOrder
from ..core.ids import new_movement_id
from ..domain.errors import ConflictError, NotFoundError
from ..domain.movements import (
    AnnotationInput,
    ApprovedTransfer,
    AssetState,
    BulkDeleteResult,
    CursorPage,
    CursorQuery,
    Destination,
    ListQuery,
    MovementAnnotation,
    MovementFilters,
    MovementRecord,
    OffsetPage,
)
from ..domain.rules import (
    annotation_order,
    date_range_bounds,
    ensure_unique_languages,
    state_after,
    state_before,
    with_destination,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MemoryAsset:
    """Mutable asset row held by the in-memory provider."""

    id: UUID
    asset_tag: str
    serial_number: Optional[str] = None
    location_id: Optional[UUID] = None
    custodian_id: Optional[UUID] = None


class MemoryAssetRepository(AssetStateProvider):
    """In-memory implementation of AssetStateProvider."""

    def __init__(self):
        self._assets: Dict[UUID, MemoryAsset] = {}

    def add(
        self,
        asset_tag: str,
        serial_number: Optional[str] = None,
        location_id: Optional[UUID] = None,
        custodian_id: Optional[UUID] = None,
        asset_id: Optional[UUID] = None,
    ) -> UUID:
        """Register an asset and return its id."""
        asset = MemoryAsset(
            id=asset_id or uuid4(),
            asset_tag=asset_tag,
            serial_number=serial_number,
            location_id=location_id,
            custodian_id=custodian_id,
        )
        self._assets[asset.id] = asset
        return asset.id

    def get(self, asset_id: UUID) -> Optional[MemoryAsset]:
        return self._assets.get(asset_id)

    def compare_and_set(self, expected: AssetState, target: AssetState) -> None:
        """Move an asset from ``expected`` to ``target`` or raise ConflictError."""
        asset = self._assets.get(expected.asset_id)
        if (
            asset is None
            or asset.location_id != expected.location_id
            or asset.custodian_id != expected.custodian_id
        ):
            raise ConflictError(
                "asset state changed since the movement was validated",
                asset_id=expected.asset_id,
            )
        asset.location_id = target.location_id
        asset.custodian_id = target.custodian_id

    def snapshot(self) -> Dict[UUID, Tuple[Optional[UUID], Optional[UUID]]]:
        return {asset_id: (a.location_id, a.custodian_id) for asset_id, a in self._assets.items()}

    def restore(self, snapshot: Dict[UUID, Tuple[Optional[UUID], Optional[UUID]]]) -> None:
        for asset_id, (location_id, custodian_id) in snapshot.items():
            asset = self._assets[asset_id]
            asset.location_id = location_id
            asset.custodian_id = custodian_id

    async def exists(self, asset_id: UUID) -> bool:
        """Check whether an asset exists."""
        return asset_id in self._assets

    async def current_state(self, asset_id: UUID) -> Optional[AssetState]:
        """Get the asset's current location and custodian."""
        asset = self._assets.get(asset_id)
        if asset is None:
            return None
        return AssetState(
            asset_id=asset_id, location_id=asset.location_id, custodian_id=asset.custodian_id
        )

    async def labels(self, asset_ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Get asset tags for the given assets."""
        return {
            asset_id: self._assets[asset_id].asset_tag
            for asset_id in asset_ids
            if asset_id in self._assets
        }


class _MemoryNamedDirectory:
    """Shared storage for locations and users."""

    def __init__(self):
        self._names: Dict[UUID, str] = {}

    def add(self, name: str, entity_id: Optional[UUID] = None) -> UUID:
        """Register an entity and return its id."""
        entity_id = entity_id or uuid4()
        self._names[entity_id] = name
        return entity_id

    async def exists(self, entity_id: UUID) -> bool:
        return entity_id in self._names

    async def names(self, entity_ids: Iterable[UUID]) -> Dict[UUID, str]:
        return {
            entity_id: self._names[entity_id]
            for entity_id in entity_ids
            if entity_id in self._names
        }


class MemoryLocationRepository(_MemoryNamedDirectory, LocationDirectory):
    """In-memory implementation of LocationDirectory."""


class MemoryUserRepository(_MemoryNamedDirectory, UserDirectory):
    """In-memory implementation of UserDirectory."""


class MemoryMovementRepository(MovementLedger):
    """
    In-memory implementation of MovementLedger.

    Writes are staged and only published once every step has succeeded, so a
    failed write leaves both the ledger and the asset states untouched.
    """

    def __init__(self, assets: MemoryAssetRepository):
        self._assets = assets
        self._movements: Dict[UUID, MovementRecord] = {}

    # Writes

    def _new_record(
        self, transfer: ApprovedTransfer, annotations: Sequence[AnnotationInput], now: datetime
    ) -> MovementRecord:
        return MovementRecord(
            id=new_movement_id(),
            asset_id=transfer.asset_id,
            from_location_id=transfer.from_location_id,
            to_location_id=transfer.to_location_id,
            from_custodian_id=transfer.from_custodian_id,
            to_custodian_id=transfer.to_custodian_id,
            moved_by=transfer.moved_by,
            movement_date=transfer.movement_date,
            created_at=now,
            updated_at=now,
            annotations=tuple(
                MovementAnnotation(
                    lang_code=annotation.lang_code,
                    notes=annotation.notes,
                    created_at=now,
                    updated_at=now,
                )
                for annotation in sorted(annotations, key=lambda a: a.lang_code)
            ),
        )

    async def append(
        self, transfer: ApprovedTransfer, annotations: Sequence[AnnotationInput] = ()
    ) -> MovementRecord:
        """Persist an approved transfer and move the asset's state to its destination."""
        records = await self.append_many([(transfer, annotations)])
        return records[0]

    async def append_many(
        self, items: Sequence[Tuple[ApprovedTransfer, Sequence[AnnotationInput]]]
    ) -> List[MovementRecord]:
        """Persist several approved transfers in a single unit of work."""
        for _, annotations in items:
            ensure_unique_languages(annotations)
        now = _utcnow()

        snapshot = self._assets.snapshot()
        records = []
        try:
            for transfer, annotations in items:
                self._assets.compare_and_set(state_before(transfer), state_after(transfer))
                records.append(self._new_record(transfer, annotations, now))
        except BaseException:
            self._assets.restore(snapshot)
            raise

        for record in records:
            self._movements[record.id] = record
        return records

    async def amend(
        self,
        movement_id: UUID,
        destination: Optional[Destination],
        annotations: Sequence[AnnotationInput] = (),
    ) -> MovementRecord:
        """Point a movement at a new destination and upsert annotations."""
        ensure_unique_languages(annotations)
        current = self._movements.get(movement_id)
        if current is None:
            raise NotFoundError("movement", movement_id)
        now = _utcnow()

        amended = current.model_copy(update={"updated_at": now})
        if destination is not None:
            latest = self._latest(current.asset_id)
            if latest.id != movement_id:
                raise ConflictError(
                    "movement has been superseded by a later movement of the same asset",
                    movement_id=movement_id,
                    latest_movement_id=latest.id,
                )
            amended = with_destination(current, destination, now)
            self._assets.compare_and_set(state_after(current), state_after(amended))

        merged = list(amended.annotations)
        positions = {annotation.lang_code: index for index, annotation in enumerate(merged)}
        for annotation in annotations:
            if annotation.lang_code in positions:
                index = positions[annotation.lang_code]
                merged[index] = merged[index].model_copy(
                    update={"notes": annotation.notes, "updated_at": now}
                )
            else:
                positions[annotation.lang_code] = len(merged)
                merged.append(
                    MovementAnnotation(
                        lang_code=annotation.lang_code,
                        notes=annotation.notes,
                        created_at=now,
                        updated_at=now,
                    )
                )

        record = amended.model_copy(
            update={"annotations": tuple(sorted(merged, key=annotation_order))}
        )
        self._movements[movement_id] = record
        return record

    def _delete(self, movement_ids: Sequence[UUID]) -> None:
        """Drop movements and rewind every asset whose latest movement went with them."""
        removed = [self._movements[movement_id] for movement_id in movement_ids]
        latest_ids = {r.asset_id: self._latest(r.asset_id).id for r in removed}
        snapshot = self._assets.snapshot()
        try:
            for record in removed:
                del self._movements[record.id]

            by_asset: Dict[UUID, List[MovementRecord]] = {}
            for record in removed:
                by_asset.setdefault(record.asset_id, []).append(record)
            for asset_id, records in by_asset.items():
                if latest_ids[asset_id] not in {r.id for r in records}:
                    continue
                ordered = sorted(records, key=lambda r: (r.movement_date, r.id))
                remaining = self._latest(asset_id)
                target = state_after(remaining) if remaining else state_before(ordered[0])
                self._assets.compare_and_set(state_after(ordered[-1]), target)
        except BaseException:
            self._assets.restore(snapshot)
            for record in removed:
                self._movements[record.id] = record
            raise

    async def remove(self, movement_id: UUID) -> None:
        """Delete a movement and its annotations, rewinding the asset if it was the latest."""
        if movement_id not in self._movements:
            raise NotFoundError("movement", movement_id)
        self._delete([movement_id])

    async def remove_many(self, movement_ids: Sequence[UUID]) -> BulkDeleteResult:
        """Delete every listed movement that exists."""
        requested = list(dict.fromkeys(movement_ids))
        deleted = [movement_id for movement_id in requested if movement_id in self._movements]
        self._delete(deleted)
        return BulkDeleteResult(requested_ids=requested, deleted_ids=deleted)

    # Reads

    def _latest(self, asset_id: UUID) -> Optional[MovementRecord]:
        candidates = [r for r in self._movements.values() if r.asset_id == asset_id]
        if not candidates:
            return None
        return max(candidates, key=lambda r: (r.movement_date, r.id))

    def _matches(self, record: MovementRecord, filters: MovementFilters) -> bool:
        if filters.search and filters.search.strip():
            term = filters.search.strip().lower()
            asset = self._assets.get(record.asset_id)
            haystacks = [asset.asset_tag, asset.serial_number or ""] if asset else []
            if not any(term in value.lower() for value in haystacks):
                return False

        equality_filters = (
            (record.asset_id, filters.asset_id),
            (record.from_location_id, filters.from_location_id),
            (record.to_location_id, filters.to_location_id),
            (record.from_custodian_id, filters.from_custodian_id),
            (record.to_custodian_id, filters.to_custodian_id),
            (record.moved_by, filters.moved_by),
        )
        if any(wanted is not None and value != wanted for value, wanted in equality_filters):
            return False

        start, end = date_range_bounds(filters.date_from, filters.date_to)
        if start is not None and record.movement_date < start:
            return False
        if end is not None and record.movement_date >= end:
            return False
        return True

    def _filtered(self, filters: MovementFilters) -> List[MovementRecord]:
        return [r for r in self._movements.values() if self._matches(r, filters)]

    def _sorted_page(self, query: ListQuery, filters: MovementFilters) -> List[MovementRecord]:
        field_name = query.sort_by.value
        records = sorted(
            self._filtered(filters),
            key=lambda r: (getattr(r, field_name), r.id),
            reverse=query.sort_order == SortOrder.DESC,
        )
        return records[query.offset : query.offset + query.limit]

    async def get_by_id(self, movement_id: UUID) -> Optional[MovementRecord]:
        """Get a movement by ID."""
        return self._movements.get(movement_id)

    async def exists(self, movement_id: UUID) -> bool:
        """Check whether a movement exists."""
        return movement_id in self._movements

    async def latest_for_asset(self, asset_id: UUID) -> Optional[MovementRecord]:
        """Get the asset's most recent movement by (movement_date, id)."""
        return self._latest(asset_id)

    async def list_by_asset(self, asset_id: UUID, query: ListQuery) -> List[MovementRecord]:
        """Get one asset's movements, filtered and sorted."""
        filters = query.filters.model_copy(update={"asset_id": asset_id})
        return self._sorted_page(query, filters)

    async def list_paginated(self, query: ListQuery) -> OffsetPage:
        """Get a page of movements using offset pagination."""
        return OffsetPage(
            items=self._sorted_page(query, query.filters),
            total=len(self._filtered(query.filters)),
            limit=query.limit,
            offset=query.offset,
        )

    async def list_by_cursor(self, query: CursorQuery) -> CursorPage:
        """Get a page of movements strictly before or after a boundary movement."""
        records = sorted(
            self._filtered(query.filters), key=lambda r: (r.movement_date, r.id), reverse=True
        )
        newest_first = True

        if query.cursor is not None:
            boundary = self._movements.get(query.cursor)
            if boundary is None:
                raise NotFoundError("movement", query.cursor)
            key = (boundary.movement_date, boundary.id)
            if query.direction == CursorDirection.BEFORE:
                records = [r for r in records if (r.movement_date, r.id) < key]
            else:
                newest_first = False
                records = [r for r in reversed(records) if (r.movement_date, r.id) > key]

        page = records[: query.limit]
        has_next_page = len(records) > query.limit
        next_cursor = page[-1].id if has_next_page and page else None
        if not newest_first:
            page.reverse()
        return CursorPage(items=page, has_next_page=has_next_page, next_cursor=next_cursor)

    async def count(self, filters: MovementFilters) -> int:
        """Count movements matching the filters."""
        return len(self._filtered(filters))

    async def scan(self) -> List[MovementRecord]:
        """Get every movement, newest first."""
        return sorted(
            self._movements.values(), key=lambda r: (r.movement_date, r.id), reverse=True
        )

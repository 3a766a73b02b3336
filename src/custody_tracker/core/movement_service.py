"""
Application service for asset movements.

Wires the validator, the ledger and the statistics aggregator together and
serializes writes per asset.
"""

from typing import List, Optional, Sequence
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .locks import AssetLockRegistry, asset_locks
from .notifications import LoggingNotifier, MovementNotifier, publish
from .statistics import StatisticsAggregator
from .validator import MovementValidator
from ..config import LedgerConfig
from ..domain.errors import InvalidPayloadError, NotFoundError
from ..domain.movements import (
    AnnotationInput,
    BulkDeleteResult,
    CursorPage,
    CursorQuery,
    ListQuery,
    MovementFilters,
    MovementRecord,
    OffsetPage,
)
from ..domain.rules import ensure_not_noop, ensure_unique_languages
from ..domain.statistics import MovementStatistics
from ..repositories.interfaces import RepositoryContainer
from ..utils.logging_config import get_logger

logger = get_logger("ledger")


class TransferRequest(BaseModel):
    """A proposed transfer as submitted by a caller."""

    model_config = ConfigDict(frozen=True)

    asset_id: UUID
    to_location_id: Optional[UUID] = None
    to_custodian_id: Optional[UUID] = None
    annotations: List[AnnotationInput] = Field(default_factory=list)


class MovementService:
    """Create, amend, delete and query custody movements."""

    def __init__(
        self,
        repos: RepositoryContainer,
        ledger_config: Optional[LedgerConfig] = None,
        locks: Optional[AssetLockRegistry] = None,
        notifier: Optional[MovementNotifier] = None,
    ):
        self.repos = repos
        self.config = ledger_config or LedgerConfig()
        self.locks = locks or asset_locks
        self.notifier = notifier or LoggingNotifier()
        self.validator = MovementValidator(repos.asset, repos.location, repos.user)
        self.statistics = StatisticsAggregator(
            repos.movement,
            repos.asset,
            repos.location,
            repos.user,
            top_n=self.config.statistics_top_n,
            recent_size=self.config.statistics_recent_size,
            trend_days=self.config.statistics_trend_days,
        )

    def clamp_limit(self, limit: Optional[int]) -> int:
        """Apply the default page size and cap it at the configured maximum."""
        if limit is None or limit < 1:
            return self.config.default_page_size
        return min(limit, self.config.max_page_size)

    def check_annotations(self, annotations: Sequence[AnnotationInput]) -> None:
        """One annotation per language, notes within the configured length."""
        ensure_unique_languages(annotations)
        for annotation in annotations:
            if annotation.notes and len(annotation.notes) > self.config.annotation_max_length:
                raise InvalidPayloadError(
                    f"notes exceed {self.config.annotation_max_length} characters",
                    lang_code=annotation.lang_code,
                )

    # Writes

    async def create(
        self,
        asset_id: UUID,
        to_location_id: Optional[UUID],
        to_custodian_id: Optional[UUID],
        moved_by: UUID,
        annotations: Sequence[AnnotationInput] = (),
    ) -> MovementRecord:
        """Validate a transfer and append it to the ledger."""
        self.check_annotations(annotations)

        async with self.locks.hold(asset_id):
            transfer = await self.validator.validate(
                asset_id, to_location_id, to_custodian_id, moved_by
            )
            record = await self.repos.movement.append(transfer, annotations)

        logger.info(
            f"Movement {record.id} created: asset {asset_id} "
            f"-> location={record.to_location_id} custodian={record.to_custodian_id}"
        )
        await publish(self.notifier, [record])
        return record

    async def bulk_create(
        self, requests: Sequence[TransferRequest], moved_by: UUID
    ) -> List[MovementRecord]:
        """Validate every transfer first, then append them all or none."""
        if not requests:
            raise InvalidPayloadError("at least one movement is required")

        seen = set()
        for request in requests:
            if request.asset_id in seen:
                raise InvalidPayloadError(
                    f"duplicate asset id {request.asset_id} in batch", asset_id=request.asset_id
                )
            seen.add(request.asset_id)
            self.check_annotations(request.annotations)

        if not await self.repos.user.exists(moved_by):
            raise NotFoundError("user", moved_by)

        async with self.locks.hold_many(seen):
            items = []
            for request in requests:
                transfer = await self.validator.validate(
                    request.asset_id, request.to_location_id, request.to_custodian_id, moved_by
                )
                items.append((transfer, request.annotations))
            records = await self.repos.movement.append_many(items)

        logger.info(f"Bulk created {len(records)} movements")
        await publish(self.notifier, records)
        return records

    async def amend(
        self,
        movement_id: UUID,
        to_location_id: Optional[UUID] = None,
        to_custodian_id: Optional[UUID] = None,
        annotations: Sequence[AnnotationInput] = (),
    ) -> MovementRecord:
        """
        Revise a movement's destination and/or its annotations.

        Source fields are never re-derived. Without destination fields only
        annotations change.
        """
        if to_location_id is None and to_custodian_id is None and not annotations:
            raise InvalidPayloadError("nothing to amend")
        self.check_annotations(annotations)

        record = await self.repos.movement.get_by_id(movement_id)
        if record is None:
            raise NotFoundError("movement", movement_id)

        destination = None
        if to_location_id is not None or to_custodian_id is not None:
            destination = await self.validator.validate_destination(to_location_id, to_custodian_id)
            ensure_not_noop(destination, record.from_location_id, record.from_custodian_id)
            ensure_not_noop(destination, record.to_location_id, record.to_custodian_id)

        async with self.locks.hold(record.asset_id):
            amended = await self.repos.movement.amend(movement_id, destination, annotations)

        logger.info(f"Movement {movement_id} amended")
        return amended

    async def delete(self, movement_id: UUID) -> None:
        """Remove a movement and its annotations; the asset follows its remaining history."""
        record = await self.get(movement_id)
        async with self.locks.hold(record.asset_id):
            await self.repos.movement.remove(movement_id)
        logger.info(f"Movement {movement_id} deleted")

    async def bulk_delete(self, movement_ids: Sequence[UUID]) -> BulkDeleteResult:
        """Remove several movements; missing ids are reported, not raised."""
        if not movement_ids:
            raise InvalidPayloadError("at least one movement id is required")
        asset_ids = set()
        for movement_id in set(movement_ids):
            record = await self.repos.movement.get_by_id(movement_id)
            if record is not None:
                asset_ids.add(record.asset_id)
        async with self.locks.hold_many(asset_ids):
            result = await self.repos.movement.remove_many(movement_ids)
        logger.info(
            f"Bulk delete removed {len(result.deleted_ids)} of {len(result.requested_ids)} movements"
        )
        return result

    # Reads

    async def get(self, movement_id: UUID) -> MovementRecord:
        """Get a movement or raise NotFoundError."""
        record = await self.repos.movement.get_by_id(movement_id)
        if record is None:
            raise NotFoundError("movement", movement_id)
        return record

    async def exists(self, movement_id: UUID) -> bool:
        return await self.repos.movement.exists(movement_id)

    async def list_by_asset(self, asset_id: UUID, query: ListQuery) -> List[MovementRecord]:
        """Movements of one asset; the asset must exist."""
        if not await self.repos.asset.exists(asset_id):
            raise NotFoundError("asset", asset_id)
        return await self.repos.movement.list_by_asset(asset_id, query)

    async def list_paginated(self, query: ListQuery) -> OffsetPage:
        return await self.repos.movement.list_paginated(query)

    async def list_by_cursor(self, query: CursorQuery) -> CursorPage:
        return await self.repos.movement.list_by_cursor(query)

    async def count(self, filters: MovementFilters) -> int:
        return await self.repos.movement.count(filters)

    async def get_statistics(self) -> MovementStatistics:
        return await self.statistics.compute()

"""SQLAlchemy concrete implementations of repository interfaces."""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .interfaces import (
    AssetStateProvider,
    LocationDirectory,
    MovementLedger,
    UserDirectory,
)
from ..core.enums import CursorDirection, SortField, SortOrder
from ..core.ids import new_movement_id
from ..db.models import Asset, AssetMovement, AssetMovementAnnotation, Location, User
from ..domain.errors import ConflictError, NotFoundError, PersistenceError
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
from ..store.integrity_policy import to_custody_error
from ..store.projections import AssetStateProjection
from ..utils.logging_config import get_logger, log_exception

logger = get_logger("ledger")

SORT_COLUMNS = {
    SortField.MOVEMENT_DATE: AssetMovement.movement_date,
    SortField.CREATED_AT: AssetMovement.created_at,
    SortField.UPDATED_AT: AssetMovement.updated_at,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_record(movement: AssetMovement) -> MovementRecord:
    """Convert an ORM movement into an immutable record."""
    return MovementRecord(
        id=movement.id,
        asset_id=movement.asset_id,
        from_location_id=movement.from_location_id,
        to_location_id=movement.to_location_id,
        from_custodian_id=movement.from_user_id,
        to_custodian_id=movement.to_user_id,
        moved_by=movement.moved_by,
        movement_date=movement.movement_date,
        created_at=movement.created_at,
        updated_at=movement.updated_at,
        annotations=tuple(
            MovementAnnotation(
                lang_code=annotation.lang_code,
                notes=annotation.notes,
                created_at=annotation.created_at,
                updated_at=annotation.updated_at,
            )
            for annotation in sorted(movement.annotations, key=annotation_order)
        ),
    )


class BaseSQLAlchemyRepository:
    """Base SQLAlchemy repository implementation."""

    def __init__(self, session: Session):
        self._session = session

    async def commit(self) -> None:
        """Commit the current transaction."""
        self._session.commit()

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        self._session.rollback()

    @contextmanager
    def _unit_of_work(self, operation: str, **context):
        """
        Run a block as one transaction.

        Commits on success. Rolls back on any failure, converting integrity
        violations into ConflictError and other store failures into
        PersistenceError. Domain errors raised inside the block pass through.
        """
        context = {"operation": operation, **context}
        try:
            yield
            self._session.commit()
        except IntegrityError as e:
            self._session.rollback()
            raise to_custody_error(e, context) from e
        except SQLAlchemyError as e:
            self._session.rollback()
            log_exception("ledger", e, context)
            raise PersistenceError(f"{operation} failed") from e
        except BaseException:
            self._session.rollback()
            raise


class SQLAlchemyAssetRepository(BaseSQLAlchemyRepository, AssetStateProvider):
    """SQLAlchemy implementation of AssetStateProvider."""

    async def exists(self, asset_id: UUID) -> bool:
        """Check whether an asset exists."""
        return self._session.execute(
            select(Asset.id).where(Asset.id == asset_id)
        ).first() is not None

    async def current_state(self, asset_id: UUID) -> Optional[AssetState]:
        """Get the asset's current location and custodian."""
        row = self._session.execute(
            select(Asset.location_id, Asset.custodian_id).where(Asset.id == asset_id)
        ).first()
        if row is None:
            return None
        return AssetState(asset_id=asset_id, location_id=row.location_id, custodian_id=row.custodian_id)

    async def labels(self, asset_ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Get asset tags for the given assets."""
        ids = list(set(asset_ids))
        if not ids:
            return {}
        rows = self._session.execute(select(Asset.id, Asset.asset_tag).where(Asset.id.in_(ids)))
        return {row.id: row.asset_tag for row in rows}


class SQLAlchemyLocationRepository(BaseSQLAlchemyRepository, LocationDirectory):
    """SQLAlchemy implementation of LocationDirectory."""

    async def exists(self, location_id: UUID) -> bool:
        """Check whether a location exists."""
        return self._session.execute(
            select(Location.id).where(Location.id == location_id)
        ).first() is not None

    async def names(self, location_ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Get display names for the given locations."""
        ids = list(set(location_ids))
        if not ids:
            return {}
        rows = self._session.execute(select(Location.id, Location.name).where(Location.id.in_(ids)))
        return {row.id: row.name for row in rows}


class SQLAlchemyUserRepository(BaseSQLAlchemyRepository, UserDirectory):
    """SQLAlchemy implementation of UserDirectory."""

    async def exists(self, user_id: UUID) -> bool:
        """Check whether a user exists."""
        return self._session.execute(
            select(User.id).where(User.id == user_id)
        ).first() is not None

    async def names(self, user_ids: Iterable[UUID]) -> Dict[UUID, str]:
        """Get display names for the given users."""
        ids = list(set(user_ids))
        if not ids:
            return {}
        rows = self._session.execute(select(User.id, User.name).where(User.id.in_(ids)))
        return {row.id: row.name for row in rows}


class SQLAlchemyMovementRepository(BaseSQLAlchemyRepository, MovementLedger):
    """SQLAlchemy implementation of MovementLedger."""

    def __init__(self, session: Session):
        super().__init__(session)
        self._projection = AssetStateProjection(session)

    # Writes

    def _add_movement(
        self, transfer: ApprovedTransfer, annotations: Sequence[AnnotationInput], now: datetime
    ) -> AssetMovement:
        movement = AssetMovement(
            id=new_movement_id(),
            asset_id=transfer.asset_id,
            from_location_id=transfer.from_location_id,
            to_location_id=transfer.to_location_id,
            from_user_id=transfer.from_custodian_id,
            to_user_id=transfer.to_custodian_id,
            moved_by=transfer.moved_by,
            movement_date=transfer.movement_date,
            created_at=now,
            updated_at=now,
        )
        movement.annotations = [
            AssetMovementAnnotation(
                lang_code=annotation.lang_code,
                notes=annotation.notes,
                created_at=now,
                updated_at=now,
            )
            for annotation in annotations
        ]
        self._session.add(movement)
        return movement

    async def append(
        self, transfer: ApprovedTransfer, annotations: Sequence[AnnotationInput] = ()
    ) -> MovementRecord:
        """Persist an approved transfer and move the asset's state to its destination."""
        ensure_unique_languages(annotations)
        now = _utcnow()

        with self._unit_of_work("append_movement", asset_id=transfer.asset_id):
            movement = self._add_movement(transfer, annotations, now)
            self._session.flush()
            self._projection.apply(state_before(transfer), state_after(transfer))
            record = _to_record(movement)

        logger.info(f"Appended movement {record.id} for asset {record.asset_id}")
        return record

    async def append_many(
        self, items: Sequence[Tuple[ApprovedTransfer, Sequence[AnnotationInput]]]
    ) -> List[MovementRecord]:
        """Persist several approved transfers in a single unit of work."""
        for _, annotations in items:
            ensure_unique_languages(annotations)
        now = _utcnow()

        with self._unit_of_work("append_movements", count=len(items)):
            movements = []
            for transfer, annotations in items:
                movements.append(self._add_movement(transfer, annotations, now))
                self._session.flush()
                self._projection.apply(state_before(transfer), state_after(transfer))
            records = [_to_record(movement) for movement in movements]

        logger.info(f"Appended {len(records)} movements in one batch")
        return records

    async def amend(
        self,
        movement_id: UUID,
        destination: Optional[Destination],
        annotations: Sequence[AnnotationInput] = (),
    ) -> MovementRecord:
        """Point a movement at a new destination and upsert annotations."""
        ensure_unique_languages(annotations)
        now = _utcnow()

        with self._unit_of_work("amend_movement", entity_id=movement_id):
            movement = self._load(movement_id)
            if movement is None:
                raise NotFoundError("movement", movement_id)

            if destination is not None:
                current = _to_record(movement)
                latest_id = self._latest_id(movement.asset_id)
                if latest_id != movement.id:
                    raise ConflictError(
                        "movement has been superseded by a later movement of the same asset",
                        movement_id=movement_id,
                        latest_movement_id=latest_id,
                    )
                amended = with_destination(current, destination, now)
                movement.to_location_id = amended.to_location_id
                movement.to_user_id = amended.to_custodian_id
                self._projection.apply(state_after(current), state_after(amended))

            existing = {annotation.lang_code: annotation for annotation in movement.annotations}
            for annotation in annotations:
                stored = existing.get(annotation.lang_code)
                if stored is not None:
                    stored.notes = annotation.notes
                    stored.updated_at = now
                else:
                    movement.annotations.append(
                        AssetMovementAnnotation(
                            lang_code=annotation.lang_code,
                            notes=annotation.notes,
                            created_at=now,
                            updated_at=now,
                        )
                    )

            movement.updated_at = now
            self._session.flush()
            record = _to_record(movement)

        logger.info(f"Amended movement {movement_id}")
        return record

    def _rewind(self, removed: Sequence[MovementRecord]) -> None:
        """
        Point an asset back at the state after its remaining latest movement.

        ``removed`` holds the asset's deleted movements, which must include its
        former latest one. With no movements left the asset returns to the
        state the oldest removed movement started from.
        """
        ordered = sorted(removed, key=lambda r: (r.movement_date, r.id))
        remaining_id = self._latest_id(ordered[0].asset_id)
        if remaining_id is not None:
            target = state_after(_to_record(self._load(remaining_id)))
        else:
            target = state_before(ordered[0])
        self._projection.apply(state_after(ordered[-1]), target)

    async def remove(self, movement_id: UUID) -> None:
        """Delete a movement and its annotations, rewinding the asset if it was the latest."""
        with self._unit_of_work("remove_movement", entity_id=movement_id):
            movement = self._load(movement_id)
            if movement is None:
                raise NotFoundError("movement", movement_id)
            removed = _to_record(movement)
            was_latest = self._latest_id(removed.asset_id) == removed.id
            self._session.delete(movement)
            self._session.flush()
            if was_latest:
                self._rewind([removed])

        logger.info(f"Removed movement {movement_id}")

    async def remove_many(self, movement_ids: Sequence[UUID]) -> BulkDeleteResult:
        """Delete every listed movement that exists, in one unit of work."""
        requested = list(dict.fromkeys(movement_ids))
        if not requested:
            return BulkDeleteResult(requested_ids=[])

        with self._unit_of_work("remove_movements", count=len(requested)):
            movements = (
                self._session.execute(
                    select(AssetMovement)
                    .options(selectinload(AssetMovement.annotations))
                    .where(AssetMovement.id.in_(requested))
                )
                .scalars()
                .all()
            )
            found = {movement.id: movement for movement in movements}
            removed_by_asset: Dict[UUID, List[MovementRecord]] = {}
            for movement in found.values():
                removed_by_asset.setdefault(movement.asset_id, []).append(_to_record(movement))
            latest_ids = {asset_id: self._latest_id(asset_id) for asset_id in removed_by_asset}

            for movement in found.values():
                self._session.delete(movement)
            self._session.flush()

            for asset_id, removed in removed_by_asset.items():
                if latest_ids[asset_id] in found:
                    self._rewind(removed)

        deleted = [movement_id for movement_id in requested if movement_id in found]
        logger.info(f"Removed {len(deleted)} of {len(requested)} requested movements")
        return BulkDeleteResult(requested_ids=requested, deleted_ids=deleted)

    # Reads

    def _load(self, movement_id: UUID) -> Optional[AssetMovement]:
        return self._session.execute(
            select(AssetMovement)
            .options(selectinload(AssetMovement.annotations))
            .where(AssetMovement.id == movement_id)
        ).scalar_one_or_none()

    def _latest_id(self, asset_id: UUID) -> Optional[UUID]:
        return self._session.execute(
            select(AssetMovement.id)
            .where(AssetMovement.asset_id == asset_id)
            .order_by(AssetMovement.movement_date.desc(), AssetMovement.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _filtered(self, stmt, filters: MovementFilters):
        """Apply search and filters to a statement over asset_movements."""
        if filters.search:
            term = filters.search.strip().lower()
            if term:
                stmt = stmt.join(Asset, Asset.id == AssetMovement.asset_id).where(
                    or_(
                        func.lower(Asset.asset_tag).contains(term, autoescape=True),
                        func.lower(Asset.serial_number).contains(term, autoescape=True),
                    )
                )

        equality_filters = (
            (AssetMovement.asset_id, filters.asset_id),
            (AssetMovement.from_location_id, filters.from_location_id),
            (AssetMovement.to_location_id, filters.to_location_id),
            (AssetMovement.from_user_id, filters.from_custodian_id),
            (AssetMovement.to_user_id, filters.to_custodian_id),
            (AssetMovement.moved_by, filters.moved_by),
        )
        for column, value in equality_filters:
            if value is not None:
                stmt = stmt.where(column == value)

        start, end = date_range_bounds(filters.date_from, filters.date_to)
        if start is not None:
            stmt = stmt.where(AssetMovement.movement_date >= start)
        if end is not None:
            stmt = stmt.where(AssetMovement.movement_date < end)
        return stmt

    def _records(self, stmt) -> List[MovementRecord]:
        stmt = stmt.options(selectinload(AssetMovement.annotations))
        return [_to_record(movement) for movement in self._session.execute(stmt).scalars().all()]

    def _sorted_query(self, query: ListQuery, filters: MovementFilters):
        column = SORT_COLUMNS[query.sort_by]
        stmt = self._filtered(select(AssetMovement), filters)
        if query.sort_order == SortOrder.ASC:
            stmt = stmt.order_by(column.asc(), AssetMovement.id.asc())
        else:
            stmt = stmt.order_by(column.desc(), AssetMovement.id.desc())
        return stmt.limit(query.limit).offset(query.offset)

    async def get_by_id(self, movement_id: UUID) -> Optional[MovementRecord]:
        """Get a movement by ID."""
        movement = self._load(movement_id)
        return _to_record(movement) if movement else None

    async def exists(self, movement_id: UUID) -> bool:
        """Check whether a movement exists."""
        return self._session.execute(
            select(AssetMovement.id).where(AssetMovement.id == movement_id)
        ).first() is not None

    async def latest_for_asset(self, asset_id: UUID) -> Optional[MovementRecord]:
        """Get the asset's most recent movement by (movement_date, id)."""
        latest_id = self._latest_id(asset_id)
        return await self.get_by_id(latest_id) if latest_id else None

    async def list_by_asset(self, asset_id: UUID, query: ListQuery) -> List[MovementRecord]:
        """Get one asset's movements, filtered and sorted."""
        filters = query.filters.model_copy(update={"asset_id": asset_id})
        return self._records(self._sorted_query(query, filters))

    async def list_paginated(self, query: ListQuery) -> OffsetPage:
        """Get a page of movements using offset pagination."""
        items = self._records(self._sorted_query(query, query.filters))
        total = await self.count(query.filters)
        return OffsetPage(items=items, total=total, limit=query.limit, offset=query.offset)

    async def list_by_cursor(self, query: CursorQuery) -> CursorPage:
        """Get a page of movements strictly before or after a boundary movement."""
        stmt = self._filtered(select(AssetMovement), query.filters)
        newest_first = True

        if query.cursor is not None:
            boundary = self._session.execute(
                select(AssetMovement.movement_date, AssetMovement.id).where(
                    AssetMovement.id == query.cursor
                )
            ).first()
            if boundary is None:
                raise NotFoundError("movement", query.cursor)

            if query.direction == CursorDirection.BEFORE:
                stmt = stmt.where(
                    or_(
                        AssetMovement.movement_date < boundary.movement_date,
                        and_(
                            AssetMovement.movement_date == boundary.movement_date,
                            AssetMovement.id < boundary.id,
                        ),
                    )
                )
            else:
                newest_first = False
                stmt = stmt.where(
                    or_(
                        AssetMovement.movement_date > boundary.movement_date,
                        and_(
                            AssetMovement.movement_date == boundary.movement_date,
                            AssetMovement.id > boundary.id,
                        ),
                    )
                )

        if newest_first:
            stmt = stmt.order_by(AssetMovement.movement_date.desc(), AssetMovement.id.desc())
        else:
            stmt = stmt.order_by(AssetMovement.movement_date.asc(), AssetMovement.id.asc())

        records = self._records(stmt.limit(query.limit + 1))
        has_next_page = len(records) > query.limit
        records = records[: query.limit]

        next_cursor = records[-1].id if has_next_page and records else None
        if not newest_first:
            records.reverse()

        return CursorPage(items=records, has_next_page=has_next_page, next_cursor=next_cursor)

    async def count(self, filters: MovementFilters) -> int:
        """Count movements matching the filters."""
        stmt = self._filtered(
            select(func.count(AssetMovement.id)).select_from(AssetMovement), filters
        )
        return self._session.execute(stmt).scalar_one()

    async def scan(self) -> List[MovementRecord]:
        """Get every movement, newest first."""
        return self._records(
            select(AssetMovement).order_by(
                AssetMovement.movement_date.desc(), AssetMovement.id.desc()
            )
        )

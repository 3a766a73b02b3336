"""
Movement statistics.

Statistics are recomputed from a full scan of the ledger on every call.
``compute_statistics`` is a pure function over the scanned records;
``StatisticsAggregator`` gathers the records and display names it needs.
"""

from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence
from uuid import UUID

from .enums import MovementType
from ..domain.movements import MovementRecord
from ..domain.rules import classify_movement
from ..domain.statistics import (
    AssetMovementCount,
    DailyMovementCount,
    LocationMovementCount,
    MovementStatistics,
    MovementSummary,
    MovementTypeCounts,
    RecentMovement,
    UserMovementCount,
)
from ..repositories.interfaces import (
    AssetStateProvider,
    LocationDirectory,
    MovementLedger,
    UserDirectory,
)
from ..utils.logging_config import get_logger

logger = get_logger("statistics")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _ranked(counter: Counter) -> List[tuple]:
    """Order (id, count) pairs by count descending, ties by id ascending."""
    return sorted(counter.items(), key=lambda item: (-item[1], item[0]))


def describe_movement(
    record: MovementRecord,
    asset_tag: Optional[str],
    location_names: Dict[UUID, str],
    user_names: Dict[UUID, str],
) -> str:
    """One-line human readable summary of a movement."""
    subject = asset_tag or str(record.asset_id)

    if record.to_location_id is not None:
        target = location_names.get(record.to_location_id, str(record.to_location_id))
    else:
        target = user_names.get(record.to_custodian_id, str(record.to_custodian_id))

    if record.from_location_id is not None:
        source = location_names.get(record.from_location_id, str(record.from_location_id))
    elif record.from_custodian_id is not None:
        source = user_names.get(record.from_custodian_id, str(record.from_custodian_id))
    else:
        source = None

    actor = user_names.get(record.moved_by, str(record.moved_by))
    if source is None:
        return f"{subject} placed with {target} by {actor}"
    return f"{subject} moved from {source} to {target} by {actor}"


def compute_statistics(
    records: Sequence[MovementRecord],
    now: datetime,
    asset_labels: Optional[Dict[UUID, str]] = None,
    location_names: Optional[Dict[UUID, str]] = None,
    user_names: Optional[Dict[UUID, str]] = None,
    top_n: int = 10,
    recent_size: int = 10,
    trend_days: int = 30,
) -> MovementStatistics:
    """Aggregate a full scan of the ledger. All day boundaries are UTC."""
    asset_labels = asset_labels or {}
    location_names = location_names or {}
    user_names = user_names or {}
    now = now.astimezone(timezone.utc)
    today = now.date()

    type_counts: Counter = Counter()
    per_asset: Counter = Counter()
    incoming: Counter = Counter()
    outgoing: Counter = Counter()
    per_user: Counter = Counter()
    per_day: Counter = Counter()
    locations_involved = set()
    users_involved = set()

    for record in records:
        movement_type = classify_movement(
            record.from_location_id,
            record.from_custodian_id,
            record.to_location_id,
            record.to_custodian_id,
        )
        type_counts[movement_type] += 1
        per_asset[record.asset_id] += 1
        per_user[record.moved_by] += 1
        per_day[record.movement_date.astimezone(timezone.utc).date()] += 1
        users_involved.add(record.moved_by)

        if record.to_location_id is not None:
            incoming[record.to_location_id] += 1
            locations_involved.add(record.to_location_id)
        if record.from_location_id is not None:
            outgoing[record.from_location_id] += 1
            locations_involved.add(record.from_location_id)
        for custodian_id in (record.from_custodian_id, record.to_custodian_id):
            if custodian_id is not None:
                users_involved.add(custodian_id)

    by_asset = [
        AssetMovementCount(asset_id=asset_id, asset_tag=asset_labels.get(asset_id), movement_count=count)
        for asset_id, count in _ranked(per_asset)
    ]
    by_location = [
        LocationMovementCount(
            location_id=location_id,
            location_name=location_names.get(location_id),
            incoming=incoming[location_id],
            outgoing=outgoing[location_id],
            net=incoming[location_id] - outgoing[location_id],
        )
        for location_id, _ in _ranked(incoming + outgoing)
    ]
    by_user = [
        UserMovementCount(user_id=user_id, user_name=user_names.get(user_id), movement_count=count)
        for user_id, count in _ranked(per_user)
    ]

    newest_first = sorted(records, key=lambda r: (r.movement_date, r.id), reverse=True)
    recent = [
        RecentMovement(
            id=record.id,
            asset_id=record.asset_id,
            asset_tag=asset_labels.get(record.asset_id),
            from_location=location_names.get(record.from_location_id),
            to_location=location_names.get(record.to_location_id),
            from_user=user_names.get(record.from_custodian_id),
            to_user=user_names.get(record.to_custodian_id),
            moved_by=user_names.get(record.moved_by),
            movement_type=classify_movement(
                record.from_location_id,
                record.from_custodian_id,
                record.to_location_id,
                record.to_custodian_id,
            ),
            movement_date=record.movement_date,
            description=describe_movement(
                record, asset_labels.get(record.asset_id), location_names, user_names
            ),
        )
        for record in newest_first[:recent_size]
    ]

    first_trend_day = today - timedelta(days=trend_days - 1)
    daily_trend = [
        DailyMovementCount(day=day, count=per_day.get(day, 0))
        for day in (first_trend_day + timedelta(days=offset) for offset in range(trend_days))
    ]

    total = len(records)
    earliest = min((r.movement_date for r in records), default=None)
    latest = max((r.movement_date for r in records), default=None)
    span_days = (latest - earliest).total_seconds() / 86400 if records else 0.0

    week_start = today - timedelta(days=today.weekday())
    month_start = today.replace(day=1)

    def days_since(start: date) -> int:
        return sum(count for day, count in per_day.items() if day >= start)

    summary = MovementSummary(
        movements_today=per_day.get(today, 0),
        movements_this_week=days_since(week_start),
        movements_this_month=days_since(month_start),
        unique_assets=len(per_asset),
        unique_locations=len(locations_involved),
        unique_users=len(users_involved),
        earliest_movement=earliest,
        latest_movement=latest,
        average_per_day=total / span_days if span_days > 0 else 0.0,
        average_per_asset=total / len(per_asset) if per_asset else 0.0,
        most_active_asset=by_asset[0] if by_asset else None,
        most_active_location=by_location[0] if by_location else None,
        most_active_user=by_user[0] if by_user else None,
    )

    return MovementStatistics(
        total_movements=total,
        by_type=MovementTypeCounts(
            **{movement_type.value: type_counts[movement_type] for movement_type in MovementType}
        ),
        by_asset=by_asset[:top_n],
        by_location=by_location[:top_n],
        by_user=by_user[:top_n],
        recent=recent,
        daily_trend=daily_trend,
        summary=summary,
    )


class StatisticsAggregator:
    """Read-only statistics over the movement ledger."""

    def __init__(
        self,
        ledger: MovementLedger,
        assets: AssetStateProvider,
        locations: LocationDirectory,
        users: UserDirectory,
        top_n: int = 10,
        recent_size: int = 10,
        trend_days: int = 30,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.ledger = ledger
        self.assets = assets
        self.locations = locations
        self.users = users
        self.top_n = top_n
        self.recent_size = recent_size
        self.trend_days = trend_days
        self.clock = clock

    async def compute(self) -> MovementStatistics:
        """Scan the ledger and aggregate it."""
        records = await self.ledger.scan()

        asset_ids = {r.asset_id for r in records}
        location_ids = {
            location_id
            for r in records
            for location_id in (r.from_location_id, r.to_location_id)
            if location_id is not None
        }
        user_ids = {
            user_id
            for r in records
            for user_id in (r.from_custodian_id, r.to_custodian_id, r.moved_by)
            if user_id is not None
        }

        statistics = compute_statistics(
            records,
            now=self.clock(),
            asset_labels=await self.assets.labels(asset_ids),
            location_names=await self.locations.names(location_ids),
            user_names=await self.users.names(user_ids),
            top_n=self.top_n,
            recent_size=self.recent_size,
            trend_days=self.trend_days,
        )
        logger.debug(f"Computed statistics over {statistics.total_movements} movements")
        return statistics

"""Result types for movement statistics."""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from ..core.enums import MovementType


class _Stat(BaseModel):
    model_config = ConfigDict(frozen=True)


class MovementTypeCounts(_Stat):
    location_to_location: int = 0
    location_to_user: int = 0
    user_to_location: int = 0
    user_to_user: int = 0
    new_asset: int = 0

    def count_for(self, movement_type: MovementType) -> int:
        return getattr(self, movement_type.value)


class AssetMovementCount(_Stat):
    asset_id: UUID
    asset_tag: Optional[str] = None
    movement_count: int


class LocationMovementCount(_Stat):
    location_id: UUID
    location_name: Optional[str] = None
    incoming: int
    outgoing: int
    net: int

    @property
    def total(self) -> int:
        return self.incoming + self.outgoing


class UserMovementCount(_Stat):
    user_id: UUID
    user_name: Optional[str] = None
    movement_count: int


class RecentMovement(_Stat):
    id: UUID
    asset_id: UUID
    asset_tag: Optional[str] = None
    from_location: Optional[str] = None
    to_location: Optional[str] = None
    from_user: Optional[str] = None
    to_user: Optional[str] = None
    moved_by: Optional[str] = None
    movement_type: MovementType
    movement_date: datetime
    description: str


class DailyMovementCount(_Stat):
    day: date
    count: int


class MovementSummary(_Stat):
    movements_today: int = 0
    movements_this_week: int = 0
    movements_this_month: int = 0
    unique_assets: int = 0
    unique_locations: int = 0
    unique_users: int = 0
    earliest_movement: Optional[datetime] = None
    latest_movement: Optional[datetime] = None
    average_per_day: float = 0.0
    average_per_asset: float = 0.0
    most_active_asset: Optional[AssetMovementCount] = None
    most_active_location: Optional[LocationMovementCount] = None
    most_active_user: Optional[UserMovementCount] = None


class MovementStatistics(_Stat):
    total_movements: int
    by_type: MovementTypeCounts
    by_asset: List[AssetMovementCount]
    by_location: List[LocationMovementCount]
    by_user: List[UserMovementCount]
    recent: List[RecentMovement]
    daily_trend: List[DailyMovementCount]
    summary: MovementSummary

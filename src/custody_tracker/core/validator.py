"""
Movement validator.

Approves or rejects a proposed transfer against the asset's current state.
The validator only reads from its collaborators and holds no state.
"""

from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

from ..domain.errors import NotFoundError
from ..domain.movements import ApprovedTransfer, Destination, ToLocation
from ..domain.rules import build_approved_transfer, ensure_not_noop, resolve_destination
from ..repositories.interfaces import AssetStateProvider, LocationDirectory, UserDirectory
from ..utils.logging_config import get_logger

logger = get_logger("validation")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MovementValidator:
    """Checks a proposed transfer and derives its source fields."""

    def __init__(
        self,
        assets: AssetStateProvider,
        locations: LocationDirectory,
        users: UserDirectory,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.assets = assets
        self.locations = locations
        self.users = users
        self.clock = clock

    async def validate(
        self,
        asset_id: UUID,
        to_location_id: Optional[UUID],
        to_custodian_id: Optional[UUID],
        moved_by: UUID,
    ) -> ApprovedTransfer:
        """
        Approve a transfer or raise the first rule it breaks.

        Checks run in this order: asset exists, exactly one destination,
        destination exists and differs from the current state, acting user
        exists.

        Raises:
            NotFoundError: asset, destination or acting user is missing
            InvalidDestinationError: zero or both destinations given
            NoOpMoveError: destination equals the current state
        """
        if not await self.assets.exists(asset_id):
            raise NotFoundError("asset", asset_id)

        destination = resolve_destination(to_location_id, to_custodian_id)

        state = await self.assets.current_state(asset_id)
        if state is None:
            raise NotFoundError("asset", asset_id)

        await self.ensure_destination_exists(destination)
        ensure_not_noop(destination, state.location_id, state.custodian_id)

        if not await self.users.exists(moved_by):
            raise NotFoundError("user", moved_by)

        transfer = build_approved_transfer(state, destination, moved_by, self.clock())
        logger.debug(
            f"Approved transfer of asset {asset_id} from location={state.location_id} "
            f"custodian={state.custodian_id} to {destination.kind.value}"
        )
        return transfer

    async def validate_destination(
        self, to_location_id: Optional[UUID], to_custodian_id: Optional[UUID]
    ) -> Destination:
        """Check destination arity and existence, as creation does."""
        destination = resolve_destination(to_location_id, to_custodian_id)
        await self.ensure_destination_exists(destination)
        return destination

    async def ensure_destination_exists(self, destination: Destination) -> None:
        if isinstance(destination, ToLocation):
            if not await self.locations.exists(destination.location_id):
                raise NotFoundError("location", destination.location_id)
        elif not await self.users.exists(destination.custodian_id):
            raise NotFoundError("user", destination.custodian_id)

"""Unit tests for MovementValidator against in-memory collaborators."""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from custody_tracker.core.validator import MovementValidator
from custody_tracker.domain.errors import InvalidDestinationError, NoOpMoveError, NotFoundError
from custody_tracker.domain.movements import ToCustodian, ToLocation
from custody_tracker.repositories.memory_impl import (
    MemoryAssetRepository,
    MemoryLocationRepository,
    MemoryUserRepository,
)

FIXED_NOW = datetime(2026, 10, 14, 8, 30, tzinfo=timezone.utc)


@pytest.mark.unit
class TestMovementValidator:

    def setup_method(self):
        self.assets = MemoryAssetRepository()
        self.locations = MemoryLocationRepository()
        self.users = MemoryUserRepository()
        self.validator = MovementValidator(
            self.assets, self.locations, self.users, clock=lambda: FIXED_NOW
        )

        self.warehouse = self.locations.add("Warehouse")
        self.office = self.locations.add("Office")
        self.admin = self.users.add("Admin")
        self.alice = self.users.add("Alice")
        self.laptop = self.assets.add("LAP-001", serial_number="SN-1")

    async def test_first_placement_has_no_source(self):
        transfer = await self.validator.validate(self.laptop, self.warehouse, None, self.admin)

        assert transfer.asset_id == self.laptop
        assert transfer.from_location_id is None
        assert transfer.from_custodian_id is None
        assert transfer.destination == ToLocation(location_id=self.warehouse)
        assert transfer.moved_by == self.admin
        assert transfer.movement_date == FIXED_NOW

    async def test_source_taken_from_current_state(self):
        asset = self.assets.add("LAP-002", location_id=self.warehouse, custodian_id=self.alice)

        transfer = await self.validator.validate(asset, None, self.admin, self.admin)

        assert transfer.from_location_id == self.warehouse
        assert transfer.from_custodian_id == self.alice
        assert transfer.destination == ToCustodian(custodian_id=self.admin)

    async def test_unknown_asset_checked_first(self):
        missing = uuid4()
        # Also an invalid destination, but the asset check runs first
        with pytest.raises(NotFoundError) as exc_info:
            await self.validator.validate(missing, None, None, self.admin)
        assert exc_info.value.entity == "asset"
        assert exc_info.value.entity_id == missing

    async def test_missing_destination(self):
        with pytest.raises(InvalidDestinationError):
            await self.validator.validate(self.laptop, None, None, self.admin)

    async def test_both_destinations(self):
        with pytest.raises(InvalidDestinationError):
            await self.validator.validate(self.laptop, self.warehouse, self.alice, self.admin)

    async def test_unknown_location(self):
        with pytest.raises(NotFoundError) as exc_info:
            await self.validator.validate(self.laptop, uuid4(), None, self.admin)
        assert exc_info.value.entity == "location"

    async def test_unknown_custodian(self):
        with pytest.raises(NotFoundError) as exc_info:
            await self.validator.validate(self.laptop, None, uuid4(), self.admin)
        assert exc_info.value.entity == "user"

    async def test_noop_location(self):
        asset = self.assets.add("LAP-003", location_id=self.office)
        with pytest.raises(NoOpMoveError):
            await self.validator.validate(asset, self.office, None, self.admin)

    async def test_noop_custodian(self):
        asset = self.assets.add("LAP-004", custodian_id=self.alice)
        with pytest.raises(NoOpMoveError):
            await self.validator.validate(asset, None, self.alice, self.admin)

    async def test_unknown_acting_user_checked_last(self):
        asset = self.assets.add("LAP-005", location_id=self.office)
        stranger = uuid4()

        with pytest.raises(NotFoundError) as exc_info:
            await self.validator.validate(asset, self.warehouse, None, stranger)
        assert exc_info.value.entity == "user"
        assert exc_info.value.entity_id == stranger

        # A no-op is reported before the acting user is looked up
        with pytest.raises(NoOpMoveError):
            await self.validator.validate(asset, self.office, None, stranger)

    async def test_validator_does_not_change_state(self):
        await self.validator.validate(self.laptop, self.warehouse, None, self.admin)
        state = await self.assets.current_state(self.laptop)
        assert state.location_id is None
        assert state.custodian_id is None

    async def test_validate_destination(self):
        destination = await self.validator.validate_destination(None, self.alice)
        assert destination == ToCustodian(custodian_id=self.alice)

        with pytest.raises(NotFoundError):
            await self.validator.validate_destination(uuid4(), None)
        with pytest.raises(InvalidDestinationError):
            await self.validator.validate_destination(None, None)

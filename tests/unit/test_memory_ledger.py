"""Unit tests for the in-memory movement ledger."""

from datetime import date, datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from custody_tracker.core.enums import CursorDirection, SortField, SortOrder
from custody_tracker.domain.errors import ConflictError, NotFoundError
from custody_tracker.domain.movements import (
    AnnotationInput,
    ApprovedTransfer,
    AssetState,
    CursorQuery,
    ListQuery,
    MovementFilters,
    ToCustodian,
    ToLocation,
)
from custody_tracker.domain.rules import build_approved_transfer

BASE = datetime(2026, 10, 1, 10, 0, tzinfo=timezone.utc)


async def _move(repos, asset_id: UUID, destination, moved_by: UUID, when: datetime, annotations=()):
    """Derive a transfer from the asset's current state and append it."""
    state = await repos.asset.current_state(asset_id)
    transfer = build_approved_transfer(state, destination, moved_by, when)
    return await repos.movement.append(transfer, annotations)


@pytest.fixture
def seeded(memory_repos):
    """Two locations, two users and one asset with no state yet."""
    memory_repos.l1 = memory_repos.location.add("Shelf 1")
    memory_repos.l2 = memory_repos.location.add("Shelf 2")
    memory_repos.admin = memory_repos.user.add("Admin")
    memory_repos.alice = memory_repos.user.add("Alice")
    memory_repos.laptop = memory_repos.asset.add("LAP-001", serial_number="SN-100")
    return memory_repos


@pytest.fixture
async def five_movements(seeded):
    """Five alternating location moves of one asset, one day apart."""
    records = []
    for n in range(5):
        target = seeded.l1 if n % 2 == 0 else seeded.l2
        records.append(
            await _move(
                seeded, seeded.laptop, ToLocation(location_id=target), seeded.admin,
                BASE + timedelta(days=n),
            )
        )
    return records


@pytest.mark.unit
class TestAppend:

    async def test_append_projects_asset_state(self, seeded):
        record = await _move(
            seeded, seeded.laptop, ToLocation(location_id=seeded.l1), seeded.admin, BASE,
            annotations=[AnnotationInput(lang_code="en-US", notes="Initial placement")],
        )

        assert record.from_location_id is None
        assert record.to_location_id == seeded.l1
        assert record.annotations[0].notes == "Initial placement"
        state = await seeded.asset.current_state(seeded.laptop)
        assert state == AssetState(asset_id=seeded.laptop, location_id=seeded.l1)
        assert await seeded.movement.exists(record.id)

    async def test_stale_transfer_is_rejected(self, seeded):
        state = await seeded.asset.current_state(seeded.laptop)
        first = build_approved_transfer(state, ToLocation(location_id=seeded.l1), seeded.admin, BASE)
        second = build_approved_transfer(
            state, ToCustodian(custodian_id=seeded.alice), seeded.admin, BASE
        )

        await seeded.movement.append(first)
        with pytest.raises(ConflictError):
            await seeded.movement.append(second)

        assert len(await seeded.movement.scan()) == 1
        state = await seeded.asset.current_state(seeded.laptop)
        assert state.location_id == seeded.l1
        assert state.custodian_id is None

    async def test_append_many_is_atomic(self, seeded):
        desk = seeded.asset.add("DSK-001")
        ok = build_approved_transfer(
            await seeded.asset.current_state(desk), ToLocation(location_id=seeded.l2),
            seeded.admin, BASE,
        )
        stale = ApprovedTransfer(
            asset_id=seeded.laptop,
            from_location_id=seeded.l2,
            destination=ToLocation(location_id=seeded.l1),
            moved_by=seeded.admin,
            movement_date=BASE,
        )

        with pytest.raises(ConflictError):
            await seeded.movement.append_many([(ok, ()), (stale, ())])

        assert await seeded.movement.scan() == []
        assert (await seeded.asset.current_state(desk)).location_id is None

    async def test_duplicate_annotation_language(self, seeded):
        with pytest.raises(ConflictError):
            await _move(
                seeded, seeded.laptop, ToLocation(location_id=seeded.l1), seeded.admin, BASE,
                annotations=[AnnotationInput(lang_code="en-US"), AnnotationInput(lang_code="en-US")],
            )
        assert (await seeded.asset.current_state(seeded.laptop)).location_id is None


@pytest.mark.unit
class TestAmendAndRemove:

    async def test_amend_latest_repoints_destination(self, five_movements, seeded):
        latest = five_movements[-1]

        amended = await seeded.movement.amend(latest.id, ToCustodian(custodian_id=seeded.alice))

        assert amended.to_location_id is None
        assert amended.to_custodian_id == seeded.alice
        assert amended.from_location_id == latest.from_location_id
        state = await seeded.asset.current_state(seeded.laptop)
        assert state.custodian_id == seeded.alice
        assert state.location_id == latest.from_location_id

    async def test_amend_superseded_movement_conflicts(self, five_movements, seeded):
        with pytest.raises(ConflictError) as exc_info:
            await seeded.movement.amend(five_movements[0].id, ToCustodian(custodian_id=seeded.alice))
        assert exc_info.value.detail["latest_movement_id"] == str(five_movements[-1].id)

    async def test_annotations_are_upserted(self, five_movements, seeded):
        target = five_movements[0]
        await seeded.movement.amend(target.id, None, [AnnotationInput(lang_code="en-US", notes="one")])

        amended = await seeded.movement.amend(
            target.id,
            None,
            [
                AnnotationInput(lang_code="en-US", notes="two"),
                AnnotationInput(lang_code="de-DE", notes="zwei"),
            ],
        )

        notes = {a.lang_code: a.notes for a in amended.annotations}
        assert notes == {"en-US": "two", "de-DE": "zwei"}
        assert amended.to_location_id == target.to_location_id

    async def test_amend_missing_movement(self, seeded):
        with pytest.raises(NotFoundError):
            await seeded.movement.amend(uuid4(), None, [AnnotationInput(lang_code="en-US")])

    async def test_remove_latest_rewinds_state(self, five_movements, seeded):
        latest = five_movements[-1]
        await seeded.movement.remove(latest.id)

        assert not await seeded.movement.exists(latest.id)
        state = await seeded.asset.current_state(seeded.laptop)
        assert state.location_id == five_movements[3].to_location_id
        assert (await seeded.movement.latest_for_asset(seeded.laptop)).id == five_movements[3].id
        with pytest.raises(NotFoundError):
            await seeded.movement.remove(latest.id)

        # The new latest movement can be amended straight away
        amended = await seeded.movement.amend(
            five_movements[3].id, ToCustodian(custodian_id=seeded.alice)
        )
        assert amended.to_custodian_id == seeded.alice
        assert (await seeded.asset.current_state(seeded.laptop)).custodian_id == seeded.alice

    async def test_remove_older_movement_keeps_state(self, five_movements, seeded):
        await seeded.movement.remove(five_movements[1].id)

        state = await seeded.asset.current_state(seeded.laptop)
        assert state.location_id == five_movements[-1].to_location_id

    async def test_remove_only_movement_unplaces_asset(self, seeded):
        record = await _move(seeded, seeded.laptop, ToLocation(location_id=seeded.l1), seeded.admin, BASE)

        await seeded.movement.remove(record.id)

        state = await seeded.asset.current_state(seeded.laptop)
        assert (state.location_id, state.custodian_id) == (None, None)

    async def test_remove_many_rewinds_past_every_removed_movement(self, five_movements, seeded):
        await seeded.movement.remove_many([five_movements[4].id, five_movements[3].id])

        state = await seeded.asset.current_state(seeded.laptop)
        assert state.location_id == five_movements[2].to_location_id

        await seeded.movement.remove_many([r.id for r in five_movements[:3]])
        state = await seeded.asset.current_state(seeded.laptop)
        assert (state.location_id, state.custodian_id) == (None, None)

    async def test_annotation_order_is_stable(self, seeded):
        record = await _move(
            seeded, seeded.laptop, ToLocation(location_id=seeded.l1), seeded.admin, BASE,
            annotations=[
                AnnotationInput(lang_code="zh-CN", notes="A"),
                AnnotationInput(lang_code="de-DE", notes="B"),
            ],
        )

        assert [a.lang_code for a in record.annotations] == ["de-DE", "zh-CN"]
        fetched = await seeded.movement.get_by_id(record.id)
        assert fetched.annotations == record.annotations

        amended = await seeded.movement.amend(
            record.id, None, [AnnotationInput(lang_code="af-ZA", notes="C")]
        )
        # Later annotations follow the ones already there
        assert [a.lang_code for a in amended.annotations] == ["de-DE", "zh-CN", "af-ZA"]

    async def test_remove_many_reports_missing(self, five_movements, seeded):
        missing = uuid4()
        ids = [five_movements[0].id, missing, five_movements[1].id, five_movements[0].id]

        result = await seeded.movement.remove_many(ids)

        assert result.requested_ids == [five_movements[0].id, missing, five_movements[1].id]
        assert result.deleted_ids == [five_movements[0].id, five_movements[1].id]
        assert result.missing_ids == [missing]
        assert await seeded.movement.count(MovementFilters()) == 3


@pytest.mark.unit
class TestCursorPagination:

    async def test_first_page_is_newest(self, five_movements, seeded):
        page = await seeded.movement.list_by_cursor(CursorQuery(limit=2))

        assert [r.id for r in page.items] == [five_movements[4].id, five_movements[3].id]
        assert page.has_next_page is True
        assert page.next_cursor == five_movements[3].id

    async def test_walk_backwards(self, five_movements, seeded):
        page = await seeded.movement.list_by_cursor(
            CursorQuery(cursor=five_movements[3].id, direction=CursorDirection.BEFORE, limit=2)
        )
        assert [r.id for r in page.items] == [five_movements[2].id, five_movements[1].id]
        assert page.has_next_page is True
        assert page.next_cursor == five_movements[1].id

        last = await seeded.movement.list_by_cursor(
            CursorQuery(cursor=page.next_cursor, direction=CursorDirection.BEFORE, limit=2)
        )
        assert [r.id for r in last.items] == [five_movements[0].id]
        assert last.has_next_page is False
        assert last.next_cursor is None

    async def test_after_returns_newer_records_newest_first(self, five_movements, seeded):
        page = await seeded.movement.list_by_cursor(
            CursorQuery(cursor=five_movements[1].id, direction=CursorDirection.AFTER, limit=2)
        )

        assert [r.id for r in page.items] == [five_movements[3].id, five_movements[2].id]
        assert page.has_next_page is True
        # The continuation token is the newest record of the page
        assert page.next_cursor == five_movements[3].id

    async def test_walk_over_equal_timestamps(self, seeded):
        created = []
        for n in range(7):
            asset_id = seeded.asset.add(f"TAG-{n}")
            created.append(
                await _move(seeded, asset_id, ToLocation(location_id=seeded.l1), seeded.admin, BASE)
            )

        walked, cursor = [], None
        while True:
            page = await seeded.movement.list_by_cursor(CursorQuery(cursor=cursor, limit=3))
            walked.extend(r.id for r in page.items)
            if not page.has_next_page:
                break
            cursor = page.next_cursor

        # Same movement_date everywhere, so id decides the order
        assert walked == sorted((r.id for r in created), reverse=True)

    async def test_unknown_cursor(self, five_movements, seeded):
        with pytest.raises(NotFoundError):
            await seeded.movement.list_by_cursor(CursorQuery(cursor=uuid4()))


@pytest.mark.unit
class TestListingAndFilters:

    async def test_offset_page(self, five_movements, seeded):
        page = await seeded.movement.list_paginated(ListQuery(limit=2, offset=2))

        assert [r.id for r in page.items] == [five_movements[2].id, five_movements[1].id]
        assert page.total == 5
        assert page.current_page == 2
        assert page.total_pages == 3

    async def test_ascending_sort(self, five_movements, seeded):
        page = await seeded.movement.list_paginated(
            ListQuery(sort_by=SortField.MOVEMENT_DATE, sort_order=SortOrder.ASC, limit=10)
        )
        assert [r.id for r in page.items] == [r.id for r in five_movements]

    async def test_date_range_is_inclusive(self, five_movements, seeded):
        filters = MovementFilters(date_from=date(2026, 10, 2), date_to=date(2026, 10, 3))
        assert await seeded.movement.count(filters) == 2

    async def test_search_matches_tag_or_serial(self, five_movements, seeded):
        assert await seeded.movement.count(MovementFilters(search="lap-0")) == 5
        assert await seeded.movement.count(MovementFilters(search="sn-1")) == 5
        assert await seeded.movement.count(MovementFilters(search="desk")) == 0

    async def test_equality_filters(self, five_movements, seeded):
        assert await seeded.movement.count(MovementFilters(to_location_id=seeded.l1)) == 3
        assert await seeded.movement.count(MovementFilters(from_location_id=seeded.l1)) == 2
        assert await seeded.movement.count(MovementFilters(moved_by=seeded.alice)) == 0

    async def test_latest_and_history(self, five_movements, seeded):
        latest = await seeded.movement.latest_for_asset(seeded.laptop)
        assert latest.id == five_movements[-1].id

        history = await seeded.movement.list_by_asset(seeded.laptop, ListQuery(limit=3))
        assert [r.id for r in history] == [r.id for r in reversed(five_movements[2:])]
        assert await seeded.movement.latest_for_asset(uuid4()) is None

"""Unit tests for the pure transfer rules."""

from datetime import date, datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from custody_tracker.core.enums import MovementType
from custody_tracker.domain.errors import (
    ConflictError,
    InvalidDestinationError,
    InvalidPayloadError,
    NoOpMoveError,
)
from custody_tracker.domain.movements import (
    AnnotationInput,
    AssetState,
    MovementAnnotation,
    MovementRecord,
    ToCustodian,
    ToLocation,
)
from custody_tracker.domain.rules import (
    build_approved_transfer,
    classify_movement,
    coerce_optional_id,
    date_range_bounds,
    ensure_not_noop,
    ensure_unique_languages,
    parse_filter_date,
    resolve_destination,
    select_annotation,
    state_after,
    state_before,
    with_destination,
)

NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


def _annotation(lang_code: str, notes: str) -> MovementAnnotation:
    return MovementAnnotation(lang_code=lang_code, notes=notes, created_at=NOW, updated_at=NOW)


@pytest.mark.unit
class TestDestinationRules:
    """Destination arity and no-op detection."""

    def test_location_destination(self):
        location_id = uuid4()
        destination = resolve_destination(location_id, None)
        assert destination == ToLocation(location_id=location_id)

    def test_custodian_destination(self):
        user_id = uuid4()
        destination = resolve_destination(None, user_id)
        assert destination == ToCustodian(custodian_id=user_id)

    def test_neither_destination_rejected(self):
        with pytest.raises(InvalidDestinationError):
            resolve_destination(None, None)

    def test_both_destinations_rejected(self):
        with pytest.raises(InvalidDestinationError) as exc_info:
            resolve_destination(uuid4(), uuid4())
        assert exc_info.value.code == "invalid_destination"

    def test_same_location_is_noop(self):
        location_id = uuid4()
        with pytest.raises(NoOpMoveError) as exc_info:
            ensure_not_noop(ToLocation(location_id=location_id), location_id, None)
        assert exc_info.value.family == "location"
        assert exc_info.value.detail["id"] == str(location_id)

    def test_same_custodian_is_noop(self):
        user_id = uuid4()
        with pytest.raises(NoOpMoveError):
            ensure_not_noop(ToCustodian(custodian_id=user_id), uuid4(), user_id)

    def test_other_family_is_not_compared(self):
        shared = uuid4()
        # A custodian destination is never compared with the current location
        ensure_not_noop(ToCustodian(custodian_id=shared), shared, None)

    def test_first_placement_is_not_noop(self):
        ensure_not_noop(ToLocation(location_id=uuid4()), None, None)

    def test_blank_id_is_absent(self):
        assert coerce_optional_id("", "to_user_id") is None
        assert coerce_optional_id("   ", "to_user_id") is None
        assert coerce_optional_id(None, "to_user_id") is None

    def test_id_string_is_parsed(self):
        value = uuid4()
        assert coerce_optional_id(str(value), "to_location_id") == value

    def test_malformed_id_rejected(self):
        with pytest.raises(InvalidPayloadError):
            coerce_optional_id("not-a-uuid", "to_location_id")


@pytest.mark.unit
class TestStateTransitions:
    """Source derivation and the state a movement leaves behind."""

    def setup_method(self):
        self.asset_id = uuid4()
        self.location_id = uuid4()
        self.custodian_id = uuid4()
        self.moved_by = uuid4()

    def test_transfer_records_current_state_as_source(self):
        state = AssetState(
            asset_id=self.asset_id, location_id=self.location_id, custodian_id=self.custodian_id
        )
        target = uuid4()

        transfer = build_approved_transfer(state, ToLocation(location_id=target), self.moved_by, NOW)

        assert transfer.from_location_id == self.location_id
        assert transfer.from_custodian_id == self.custodian_id
        assert transfer.to_location_id == target
        assert transfer.to_custodian_id is None
        assert transfer.movement_date == NOW

    def test_location_move_keeps_custodian(self):
        state = AssetState(
            asset_id=self.asset_id, location_id=self.location_id, custodian_id=self.custodian_id
        )
        target = uuid4()
        transfer = build_approved_transfer(state, ToLocation(location_id=target), self.moved_by, NOW)

        assert state_before(transfer) == state
        assert state_after(transfer) == AssetState(
            asset_id=self.asset_id, location_id=target, custodian_id=self.custodian_id
        )

    def test_custodian_move_keeps_location(self):
        state = AssetState(asset_id=self.asset_id, location_id=self.location_id)
        target = uuid4()
        transfer = build_approved_transfer(
            state, ToCustodian(custodian_id=target), self.moved_by, NOW
        )

        assert state_after(transfer) == AssetState(
            asset_id=self.asset_id, location_id=self.location_id, custodian_id=target
        )

    def test_with_destination_keeps_sources(self):
        record = MovementRecord(
            id=uuid4(),
            asset_id=self.asset_id,
            from_location_id=self.location_id,
            to_location_id=uuid4(),
            moved_by=self.moved_by,
            movement_date=NOW,
            created_at=NOW,
            updated_at=NOW,
        )
        later = NOW + timedelta(minutes=5)

        amended = with_destination(record, ToCustodian(custodian_id=self.custodian_id), later)

        assert amended.from_location_id == self.location_id
        assert amended.to_location_id is None
        assert amended.to_custodian_id == self.custodian_id
        assert amended.movement_date == NOW
        assert amended.updated_at == later


@pytest.mark.unit
class TestClassification:
    """Movement type buckets are checked in a fixed priority order."""

    def test_location_to_location(self):
        assert classify_movement(uuid4(), None, uuid4(), None) == MovementType.LOCATION_TO_LOCATION

    def test_location_to_user(self):
        assert classify_movement(uuid4(), None, None, uuid4()) == MovementType.LOCATION_TO_USER

    def test_user_to_location(self):
        assert classify_movement(None, uuid4(), uuid4(), None) == MovementType.USER_TO_LOCATION

    def test_user_to_user(self):
        assert classify_movement(None, uuid4(), None, uuid4()) == MovementType.USER_TO_USER

    def test_no_source_is_new_asset(self):
        assert classify_movement(None, None, uuid4(), None) == MovementType.NEW_ASSET
        assert classify_movement(None, None, None, uuid4()) == MovementType.NEW_ASSET

    def test_location_source_wins_over_custodian_source(self):
        # Both source families set: location-based buckets come first
        assert classify_movement(uuid4(), uuid4(), None, uuid4()) == MovementType.LOCATION_TO_USER
        assert classify_movement(uuid4(), uuid4(), uuid4(), None) == MovementType.LOCATION_TO_LOCATION


@pytest.mark.unit
class TestAnnotations:
    """Language uniqueness and fallback selection."""

    def test_duplicate_languages_rejected(self):
        annotations = [
            AnnotationInput(lang_code="en-US", notes="a"),
            AnnotationInput(lang_code="en-US", notes="b"),
        ]
        with pytest.raises(ConflictError):
            ensure_unique_languages(annotations)

    def test_distinct_languages_accepted(self):
        ensure_unique_languages(
            [AnnotationInput(lang_code="en-US"), AnnotationInput(lang_code="de-DE")]
        )

    def test_requested_language_wins(self):
        annotations = [_annotation("en-US", "english"), _annotation("de-DE", "deutsch")]
        assert select_annotation(annotations, "de-DE", "en-US").notes == "deutsch"

    def test_falls_back_to_default_language(self):
        annotations = [_annotation("de-DE", "deutsch"), _annotation("en-US", "english")]
        assert select_annotation(annotations, "fr-FR", "en-US").notes == "english"

    def test_falls_back_to_first_annotation(self):
        annotations = [_annotation("de-DE", "deutsch"), _annotation("fr-FR", "francais")]
        assert select_annotation(annotations, "es-ES", "en-US").notes == "deutsch"

    def test_no_annotations(self):
        assert select_annotation((), "en-US", "en-US") is None


@pytest.mark.unit
class TestDateFilters:
    """Filter date parsing and whole-day bounds."""

    def test_parse_valid_date(self):
        assert parse_filter_date("2026-10-14", "date_from") == date(2026, 10, 14)

    def test_empty_date_is_no_filter(self):
        assert parse_filter_date(None, "date_from") is None
        assert parse_filter_date("", "date_from") is None

    def test_malformed_date_rejected(self):
        with pytest.raises(InvalidPayloadError) as exc_info:
            parse_filter_date("14/10/2026", "date_to")
        assert exc_info.value.detail["field"] == "date_to"

    def test_bounds_cover_whole_days(self):
        start, end = date_range_bounds(date(2026, 10, 1), date(2026, 10, 14))
        assert start == datetime(2026, 10, 1, tzinfo=timezone.utc)
        assert end == datetime(2026, 10, 15, tzinfo=timezone.utc)

    def test_open_bounds(self):
        assert date_range_bounds(None, None) == (None, None)


@pytest.mark.unit
def test_destination_kinds_are_tagged():
    location = ToLocation(location_id=UUID(int=1))
    custodian = ToCustodian(custodian_id=UUID(int=2))
    assert location.kind.value == "location"
    assert custodian.kind.value == "custodian"

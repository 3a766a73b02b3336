"""Enums for the Custody Tracker application."""

from enum import Enum


class MovementType(str, Enum):
    """Classification of a movement by which source and destination fields are set."""

    LOCATION_TO_LOCATION = "location_to_location"
    LOCATION_TO_USER = "location_to_user"
    USER_TO_LOCATION = "user_to_location"
    USER_TO_USER = "user_to_user"
    NEW_ASSET = "new_asset"


class DestinationKind(str, Enum):
    """The family a movement destination belongs to."""

    LOCATION = "location"
    CUSTODIAN = "custodian"


class SortField(str, Enum):
    """Fields a movement listing can be sorted by."""

    MOVEMENT_DATE = "movement_date"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class SortOrder(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class CursorDirection(str, Enum):
    """Which side of the boundary record a cursor page is taken from."""

    BEFORE = "before"
    AFTER = "after"


class NotificationKind(str, Enum):
    """What a movement notification tells its recipient."""

    LOCATION_CHANGED = "location_changed"
    CUSTODIAN_ASSIGNED = "custodian_assigned"

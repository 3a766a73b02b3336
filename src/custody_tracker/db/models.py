"""SQLAlchemy models for the Custody Tracker."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy import (
    Column,
    String,
    Text,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator, CHAR

from .database import Base
from ..core.ids import new_movement_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GUID(TypeDecorator):
    """Platform-independent GUID type using String for SQLite."""

    impl = CHAR
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(PG_UUID())
        return dialect.type_descriptor(CHAR(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, UUID):
            value = UUID(str(value))
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if not isinstance(value, UUID):
            return UUID(value)
        return value


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC datetime that survives SQLite's naive storage."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Asset(Base):
    """An inventory asset whose custody is tracked."""

    __tablename__ = "assets"

    id = Column(GUID(), primary_key=True, default=uuid4)
    asset_tag = Column(String(64), nullable=False, unique=True)
    serial_number = Column(String(128), nullable=True)
    name = Column(String(255), nullable=False)
    location_id = Column(GUID(), ForeignKey("locations.id"), nullable=True)
    custodian_id = Column(GUID(), ForeignKey("users.id"), nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (Index("ix_assets_serial_number", "serial_number"),)

    def __repr__(self) -> str:
        return f"<Asset(id={self.id}, tag='{self.asset_tag}')>"


class Location(Base):
    """A storage location an asset can be placed in."""

    __tablename__ = "locations"

    id = Column(GUID(), primary_key=True, default=uuid4)
    code = Column(String(32), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<Location(id={self.id}, code='{self.code}')>"


class User(Base):
    """A person who can hold custody of assets or record movements."""

    __tablename__ = "users"

    id = Column(GUID(), primary_key=True, default=uuid4)
    name = Column(String(255), nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, name='{self.name}')>"


class AssetMovement(Base):
    """One entry of the custody ledger.

    Source fields are derived from the asset's state when the movement was
    approved. Exactly one destination family is populated.
    """

    __tablename__ = "asset_movements"

    id = Column(GUID(), primary_key=True, default=new_movement_id)
    asset_id = Column(GUID(), ForeignKey("assets.id"), nullable=False)
    from_location_id = Column(GUID(), ForeignKey("locations.id"), nullable=True)
    to_location_id = Column(GUID(), ForeignKey("locations.id"), nullable=True)
    from_user_id = Column(GUID(), ForeignKey("users.id"), nullable=True)
    to_user_id = Column(GUID(), ForeignKey("users.id"), nullable=True)
    moved_by = Column(GUID(), ForeignKey("users.id"), nullable=False)
    movement_date = Column(UTCDateTime(), nullable=False)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=_utcnow)

    # Relationships
    asset = relationship("Asset")
    annotations = relationship(
        "AssetMovementAnnotation",
        back_populates="movement",
        cascade="all, delete-orphan",
        order_by=lambda: [
            AssetMovementAnnotation.created_at,
            AssetMovementAnnotation.lang_code,
        ],
    )

    __table_args__ = (
        Index("ix_asset_movements_date_id", "movement_date", "id"),
        Index("ix_asset_movements_asset_date", "asset_id", "movement_date"),
        Index("ix_asset_movements_moved_by", "moved_by"),
    )

    def __repr__(self) -> str:
        return (
            f"<AssetMovement(id={self.id}, asset_id={self.asset_id}, "
            f"to_location_id={self.to_location_id}, to_user_id={self.to_user_id})>"
        )


class AssetMovementAnnotation(Base):
    """Per-language free-text note attached to a movement."""

    __tablename__ = "asset_movement_annotations"

    id = Column(GUID(), primary_key=True, default=uuid4)
    movement_id = Column(
        GUID(), ForeignKey("asset_movements.id", ondelete="CASCADE"), nullable=False
    )
    lang_code = Column(String(5), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime(), nullable=False, default=_utcnow)

    # Relationships
    movement = relationship("AssetMovement", back_populates="annotations")

    __table_args__ = (
        UniqueConstraint("movement_id", "lang_code", name="uq_movement_annotation_lang"),
    )

    def __repr__(self) -> str:
        return f"<AssetMovementAnnotation(movement_id={self.movement_id}, lang='{self.lang_code}')>"

"""create custody ledger

Revision ID: 3f9a2c71d4e8
Revises:
Create Date: 2026-10-12 09:14:52.310277

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from custody_tracker.db.models import GUID, UTCDateTime


# revision identifiers, used by Alembic.
revision: str = '3f9a2c71d4e8'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create reference tables, assets, the movement ledger and its annotations."""
    op.create_table(
        'locations',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('code', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    op.create_table(
        'users',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', UTCDateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_table(
        'assets',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('asset_tag', sa.String(length=64), nullable=False),
        sa.Column('serial_number', sa.String(length=128), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('location_id', GUID(), nullable=True),
        sa.Column('custodian_id', GUID(), nullable=True),
        sa.Column('created_at', UTCDateTime(), nullable=False),
        sa.Column('updated_at', UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['custodian_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('asset_tag'),
    )
    op.create_index('ix_assets_serial_number', 'assets', ['serial_number'])

    op.create_table(
        'asset_movements',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('asset_id', GUID(), nullable=False),
        sa.Column('from_location_id', GUID(), nullable=True),
        sa.Column('to_location_id', GUID(), nullable=True),
        sa.Column('from_user_id', GUID(), nullable=True),
        sa.Column('to_user_id', GUID(), nullable=True),
        sa.Column('moved_by', GUID(), nullable=False),
        sa.Column('movement_date', UTCDateTime(), nullable=False),
        sa.Column('created_at', UTCDateTime(), nullable=False),
        sa.Column('updated_at', UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(['asset_id'], ['assets.id']),
        sa.ForeignKeyConstraint(['from_location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['to_location_id'], ['locations.id']),
        sa.ForeignKeyConstraint(['from_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['to_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['moved_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_asset_movements_date_id', 'asset_movements', ['movement_date', 'id'])
    op.create_index('ix_asset_movements_asset_date', 'asset_movements', ['asset_id', 'movement_date'])
    op.create_index('ix_asset_movements_moved_by', 'asset_movements', ['moved_by'])

    op.create_table(
        'asset_movement_annotations',
        sa.Column('id', GUID(), nullable=False),
        sa.Column('movement_id', GUID(), nullable=False),
        sa.Column('lang_code', sa.String(length=5), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', UTCDateTime(), nullable=False),
        sa.Column('updated_at', UTCDateTime(), nullable=False),
        sa.ForeignKeyConstraint(['movement_id'], ['asset_movements.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('movement_id', 'lang_code', name='uq_movement_annotation_lang'),
    )


def downgrade() -> None:
    """Drop the ledger and its reference tables."""
    op.drop_table('asset_movement_annotations')
    op.drop_index('ix_asset_movements_moved_by', table_name='asset_movements')
    op.drop_index('ix_asset_movements_asset_date', table_name='asset_movements')
    op.drop_index('ix_asset_movements_date_id', table_name='asset_movements')
    op.drop_table('asset_movements')
    op.drop_index('ix_assets_serial_number', table_name='assets')
    op.drop_table('assets')
    op.drop_table('users')
    op.drop_table('locations')

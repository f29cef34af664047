"""Create inventory core tables

Revision ID: 001_inventory_core
Revises:
Create Date: 2026-10-19

Catalog items, serialized equipment instances, crews and their assigned
inventory, cable bobbins, the movement history and daily snapshots.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_inventory_core'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hashed_password', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.true()),
        sa.Column('is_admin', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('is_superuser', sa.Boolean, server_default=sa.false()),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'inventory_items',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('description', sa.String(255), nullable=False),
        sa.Column('unit', sa.String(20), nullable=False, server_default='unidades'),
        sa.Column('type', sa.String(20), nullable=False),
        sa.Column('current_stock', sa.Integer, nullable=False, server_default='0'),
        sa.Column('minimum_stock', sa.Integer, nullable=False, server_default='5'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_inventory_items_code', 'inventory_items', ['code'], unique=True)
    op.create_index('ix_inventory_items_type', 'inventory_items', ['type'])

    op.create_table(
        'crews',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('leader_name', sa.String(150), nullable=True),
        sa.Column('members', sa.JSON, nullable=True),
        sa.Column('vehicles', sa.JSON, nullable=True),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_crews_name', 'crews', ['name'], unique=True)

    op.create_table(
        'equipment_instances',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('item_id', sa.String(36), sa.ForeignKey('inventory_items.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('unique_id', sa.String(100), nullable=False),
        sa.Column('serial_number', sa.String(100), nullable=True),
        sa.Column('mac_address', sa.String(50), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='in-stock', index=True),
        sa.Column('assigned_crew_id', sa.String(36), sa.ForeignKey('crews.id'), nullable=True, index=True),
        sa.Column('assigned_order_id', sa.String(36), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('installed_order_id', sa.String(36), nullable=True, index=True),
        sa.Column('installed_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('installed_location', sa.String(255), nullable=True),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('was_deployed', sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_equipment_instances_unique_id', 'equipment_instances', ['unique_id'], unique=True)

    op.create_table(
        'crew_inventory_items',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('crew_id', sa.String(36), sa.ForeignKey('crews.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('item_id', sa.String(36), sa.ForeignKey('inventory_items.id'), nullable=False, index=True),
        sa.Column('quantity', sa.Integer, nullable=False, server_default='0'),
        sa.Column('last_update', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('crew_id', 'item_id', name='uq_crew_inventory_item'),
    )

    op.create_table(
        'inventory_batches',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('batch_code', sa.String(50), nullable=False),
        sa.Column('item_id', sa.String(36), sa.ForeignKey('inventory_items.id'), nullable=False, index=True),
        sa.Column('initial_quantity', sa.Integer, nullable=False),
        sa.Column('current_quantity', sa.Integer, nullable=False),
        sa.Column('unit', sa.String(20), server_default='metros'),
        sa.Column('location', sa.String(20), nullable=False, server_default='warehouse'),
        sa.Column('crew_id', sa.String(36), sa.ForeignKey('crews.id'), nullable=True, index=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('supplier', sa.String(100), server_default='Netuno'),
        sa.Column('acquisition_date', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_inventory_batches_batch_code', 'inventory_batches', ['batch_code'], unique=True)

    op.create_table(
        'inventory_history',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('item_id', sa.String(36), sa.ForeignKey('inventory_items.id'), nullable=False, index=True),
        sa.Column('type', sa.String(20), nullable=False, index=True),
        sa.Column('quantity_change', sa.Integer, nullable=False),
        sa.Column('reason', sa.String(500), nullable=True),
        sa.Column('crew_id', sa.String(36), sa.ForeignKey('crews.id'), nullable=True, index=True),
        sa.Column('order_id', sa.String(36), nullable=True, index=True),
        sa.Column('batch_id', sa.String(36), sa.ForeignKey('inventory_batches.id'), nullable=True),
        sa.Column('instance_ids', sa.JSON, nullable=True),
        sa.Column('performed_by', sa.Integer, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), index=True),
    )

    op.create_table(
        'inventory_snapshots',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('snapshot_date', sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column('warehouse_inventory', sa.JSON, nullable=False),
        sa.Column('crew_inventories', sa.JSON, nullable=False),
        sa.Column('total_items', sa.Integer, nullable=False, server_default='0'),
        sa.Column('total_warehouse_stock', sa.Integer, nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade():
    op.drop_table('inventory_snapshots')
    op.drop_table('inventory_history')
    op.drop_index('ix_inventory_batches_batch_code')
    op.drop_table('inventory_batches')
    op.drop_table('crew_inventory_items')
    op.drop_index('ix_equipment_instances_unique_id')
    op.drop_table('equipment_instances')
    op.drop_index('ix_crews_name')
    op.drop_table('crews')
    op.drop_index('ix_inventory_items_type')
    op.drop_index('ix_inventory_items_code')
    op.drop_table('inventory_items')
    op.drop_index('ix_users_email')
    op.drop_table('users')

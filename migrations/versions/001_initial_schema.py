"""Initial schema for users, pharmacies, products, batches and stock events

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-01-12

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('hashed_password', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), onupdate=sa.func.now(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Create pharmacies table (tenant scope)
    op.create_table(
        'pharmacies',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('timezone', sa.String(50), nullable=False, server_default='UTC'),
        sa.Column('notifications_enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), onupdate=sa.func.now(), nullable=True),
    )
    op.create_index('ix_pharmacies_owner_id', 'pharmacies', ['owner_id'])

    # Create products table
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('pharmacy_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('pharmacies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('barcode', sa.String(64), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('brand', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), onupdate=sa.func.now(), nullable=True),
        sa.UniqueConstraint('pharmacy_id', 'barcode', name='uq_products_pharmacy_barcode'),
    )
    op.create_index('ix_products_pharmacy_id', 'products', ['pharmacy_id'])

    # Create batches table; quantity_remaining only ever decreases
    op.create_table(
        'batches',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('pharmacy_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('pharmacies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('lot_number', sa.String(100), nullable=False),
        sa.Column('expiration_date', sa.Date(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('quantity_remaining', sa.Integer(), nullable=False),
        sa.Column('location', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_batches_quantity_positive'),
        sa.CheckConstraint(
            'quantity_remaining >= 0 AND quantity_remaining <= quantity',
            name='ck_batches_remaining_bounds',
        ),
    )
    op.create_index('idx_batches_fifo', 'batches', ['pharmacy_id', 'product_id', 'expiration_date', 'id'])

    # Create sale_events table (append-only)
    op.create_table(
        'sale_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('pharmacy_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('pharmacies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('barcode', sa.String(64), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('sale_date', sa.Date(), nullable=False),
        sa.Column('source', sa.String(20), nullable=False, server_default='manual'),
        sa.Column('external_ref', sa.String(255), nullable=True),
        sa.Column('processed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('idx_sale_events_pharmacy_date', 'sale_events', ['pharmacy_id', 'sale_date'])

    # Create waste_events table (append-only)
    op.create_table(
        'waste_events',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('pharmacy_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('pharmacies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('batch_id', sa.Integer(), sa.ForeignKey('batches.id', ondelete='SET NULL'), nullable=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(20), nullable=False),
        sa.Column('event_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_waste_events_product_id', 'waste_events', ['product_id'])

    # Create sale_imports table (file-level deduplication)
    op.create_table(
        'sale_imports',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('pharmacy_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('pharmacies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('status', sa.String(), nullable=False, server_default='PROCESSING'),
        sa.Column('file_hash', sa.String(64), nullable=True),
        sa.Column('rows_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('errors', postgresql.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), onupdate=sa.func.now(), nullable=True),
    )
    op.create_index('ix_sale_imports_file_hash', 'sale_imports', ['file_hash'])

    # Create notification_rules table
    op.create_table(
        'notification_rules',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('pharmacy_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('pharmacies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('rule_type', sa.String(30), nullable=False),
        sa.Column('threshold', sa.Float(), nullable=False),
        sa.Column('enabled', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.UniqueConstraint('pharmacy_id', 'rule_type', name='uq_notification_rules_pharmacy_type'),
    )


def downgrade() -> None:
    op.drop_table('notification_rules')
    op.drop_table('sale_imports')
    op.drop_table('waste_events')
    op.drop_table('sale_events')
    op.drop_table('batches')
    op.drop_table('products')
    op.drop_table('pharmacies')
    op.drop_table('users')

"""Initial stock ledger schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration creates:
1. products (stock/cost state, soft delete, optimistic version column)
2. stock_adjustments (append-only stock ledger)
3. product_price_history (append-only price audit)
4. sales and sale_items (historical cost snapshot per item)
5. returns and return_lines (cumulative partial returns)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. PRODUCTS
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('barcode', sa.String(length=50), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('unit', sa.String(length=16), nullable=False, server_default='piece'),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost_price_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('stock_quantity', sa.Numeric(precision=14, scale=3), nullable=False, server_default='0'),
        sa.Column('min_stock_threshold', sa.Numeric(precision=14, scale=3), nullable=False, server_default='5'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('selling_price_cents >= 0', name='ck_products_selling_price'),
        sa.CheckConstraint('cost_price_cents >= 0', name='ck_products_cost_price'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_products')),
        sa.UniqueConstraint('name', name=op.f('uq_products_name')),
        sa.UniqueConstraint('barcode', name=op.f('uq_products_barcode')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_is_deleted', ['is_deleted'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_category_id'), ['category_id'], unique=False)

    # ==========================================================================
    # 2. STOCK ADJUSTMENTS
    # ==========================================================================
    op.create_table('stock_adjustments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('adjustment_type', sa.String(length=16), nullable=False),
        sa.Column('quantity_delta', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('resulting_stock', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('resulting_cost_price_cents', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE', name=op.f('fk_stock_adjustments_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_stock_adjustments')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_adjustments', schema=None) as batch_op:
        batch_op.create_index('ix_stock_adj_product_created', ['product_id', 'created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_adjustments_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_adjustments_adjustment_type'), ['adjustment_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_stock_adjustments_reference'), ['reference'], unique=False)

    # ==========================================================================
    # 3. PRICE HISTORY
    # ==========================================================================
    op.create_table('product_price_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('cost_price_cents', sa.Integer(), nullable=False),
        sa.Column('change_type', sa.String(length=20), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='CASCADE', name=op.f('fk_product_price_history_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_product_price_history')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_price_history', schema=None) as batch_op:
        batch_op.create_index('ix_price_history_product_created', ['product_id', 'created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_product_price_history_product_id'), ['product_id'], unique=False)

    # ==========================================================================
    # 4. SALES
    # ==========================================================================
    op.create_table('sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('receipt_number', sa.String(length=50), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_type', sa.String(length=16), nullable=True),
        sa.Column('discount_value', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_rate', sa.Numeric(precision=6, scale=3), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='cash'),
        sa.Column('amount_paid_cents', sa.Integer(), nullable=False),
        sa.Column('change_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cash_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('card_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_returned', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('total_cents = subtotal_cents - discount_cents + tax_cents', name='ck_sales_total_identity'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sales')),
        sa.UniqueConstraint('receipt_number', name=op.f('uq_sales_receipt_number')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sales', schema=None) as batch_op:
        batch_op.create_index('ix_sales_created', ['created_at'], unique=False)
        batch_op.create_index('ix_sales_payment_created', ['payment_method', 'created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_payment_method'), ['payment_method'], unique=False)
        batch_op.create_index(batch_op.f('ix_sales_is_returned'), ['is_returned'], unique=False)

    op.create_table('sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=100), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.Column('historical_cost_cents', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_sale_items_quantity_positive'),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ondelete='CASCADE', name=op.f('fk_sale_items_sale_id_sales')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='RESTRICT', name=op.f('fk_sale_items_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sale_items')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('sale_items', schema=None) as batch_op:
        batch_op.create_index('ix_sale_items_product', ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_sale_items_sale_id'), ['sale_id'], unique=False)

    # ==========================================================================
    # 5. RETURNS
    # ==========================================================================
    op.create_table('returns',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('refund_cents', sa.Integer(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('is_cancellation', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id'], ondelete='CASCADE', name=op.f('fk_returns_sale_id_sales')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_returns')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('returns', schema=None) as batch_op:
        batch_op.create_index('ix_returns_sale_created', ['sale_id', 'created_at'], unique=False)
        batch_op.create_index(batch_op.f('ix_returns_sale_id'), ['sale_id'], unique=False)

    op.create_table('return_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('return_id', sa.Integer(), nullable=False),
        sa.Column('sale_item_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Numeric(precision=14, scale=3), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('refund_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_return_lines_quantity_positive'),
        sa.ForeignKeyConstraint(['return_id'], ['returns.id'], ondelete='CASCADE', name=op.f('fk_return_lines_return_id_returns')),
        sa.ForeignKeyConstraint(['sale_item_id'], ['sale_items.id'], ondelete='CASCADE', name=op.f('fk_return_lines_sale_item_id_sale_items')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='RESTRICT', name=op.f('fk_return_lines_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_return_lines')),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('return_lines', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_return_lines_return_id'), ['return_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_return_lines_sale_item_id'), ['sale_item_id'], unique=False)


def downgrade():
    op.drop_table('return_lines')
    op.drop_table('returns')
    op.drop_table('sale_items')
    op.drop_table('sales')
    op.drop_table('product_price_history')
    op.drop_table('stock_adjustments')
    op.drop_table('products')

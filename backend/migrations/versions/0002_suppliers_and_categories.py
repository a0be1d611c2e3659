"""suppliers and product categories

Revision ID: 0002_suppliers
Revises: 0001_initial
Create Date: 2026-10-19 00:00:00.000000

Adds:
1. suppliers: directory of wholesalers products are bought from
2. products.category: free-text grouping used by listings and profit reports
3. products.supplier_id: optional link to the supplier
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0002_suppliers'
down_revision = '0001_initial'
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. SUPPLIERS TABLE
    # ==========================================================================
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_suppliers')),
        sqlite_autoincrement=True
    )
    op.create_index('ix_suppliers_name', 'suppliers', ['name'])

    # ==========================================================================
    # 2-3. PRODUCT CATEGORY AND SUPPLIER
    # ==========================================================================
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.add_column(sa.Column('category', sa.String(length=64), nullable=True))
        batch_op.add_column(sa.Column('supplier_id', sa.Integer(), nullable=True))
        batch_op.create_index(batch_op.f('ix_products_category'), ['category'], unique=False)
        batch_op.create_index(batch_op.f('ix_products_supplier_id'), ['supplier_id'], unique=False)
        batch_op.create_foreign_key(
            batch_op.f('fk_products_supplier_id_suppliers'), 'suppliers', ['supplier_id'], ['id']
        )


def downgrade():
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.drop_constraint(batch_op.f('fk_products_supplier_id_suppliers'), type_='foreignkey')
        batch_op.drop_index(batch_op.f('ix_products_supplier_id'))
        batch_op.drop_index(batch_op.f('ix_products_category'))
        batch_op.drop_column('supplier_id')
        batch_op.drop_column('category')

    op.drop_index('ix_suppliers_name', table_name='suppliers')
    op.drop_table('suppliers')

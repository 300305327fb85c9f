"""add taxes table and invoice tax link

Revision ID: 7e3a9b2c5d10
Revises: 4c1d2e8f9a01
Create Date: 2026-10-18 15:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7e3a9b2c5d10'
down_revision = '4c1d2e8f9a01'
branch_labels = None
depends_on = None


def upgrade():
    # --- New table: taxes ---
    op.create_table('taxes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('tenant_id', sa.String(length=36), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('rate', sa.Numeric(precision=5, scale=2), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_taxes_tenant_id', 'taxes', ['tenant_id'], unique=False)

    # --- New columns on invoices: chosen tax and its rate at the time ---
    with op.batch_alter_table('invoices') as batch_op:
        batch_op.add_column(sa.Column('tax_id', sa.String(length=36), nullable=True))
        batch_op.add_column(sa.Column('tax_rate', sa.Numeric(precision=5, scale=2), nullable=True))
        batch_op.create_foreign_key(
            'fk_invoices_tax_id_taxes', 'taxes', ['tax_id'], ['id'], ondelete='SET NULL'
        )


def downgrade():
    with op.batch_alter_table('invoices') as batch_op:
        batch_op.drop_constraint('fk_invoices_tax_id_taxes', type_='foreignkey')
        batch_op.drop_column('tax_rate')
        batch_op.drop_column('tax_id')

    op.drop_index('ix_taxes_tenant_id', table_name='taxes')
    op.drop_table('taxes')

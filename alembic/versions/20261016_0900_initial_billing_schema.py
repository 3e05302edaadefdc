"""Initial billing schema

Revision ID: 20261016_0900_initial_billing_schema
Revises:
Create Date: 2026-10-16 09:00:00.000000

Creates the tables used by the billing core:
- users, stores, staff_store_permissions: access control
- service_requests, service_records: the work being quoted and invoiced
- quotations, invoices: line-item documents with money totals
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '20261016_0900_initial_billing_schema'
down_revision = None
branch_labels = None
depends_on = None


# Enum columns store member names
user_role = sa.Enum('ADMIN', 'STORE_OWNER', 'STAFF', 'CUSTOMER', name='userrole')
request_status = sa.Enum(
    'PENDING', 'QUOTED', 'APPROVED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED', 'EXPIRED',
    name='requeststatus',
)
record_status = sa.Enum(
    'PENDING', 'IN_PROGRESS', 'COMPLETED', 'ON_HOLD', 'CANCELLED',
    name='servicerecordstatus',
)
quotation_status = sa.Enum('DRAFT', 'SENT', 'APPROVED', 'REJECTED', 'EXPIRED', name='quotationstatus')
payment_status = sa.Enum('PENDING', 'PARTIAL', 'PAID', 'OVERDUE', 'CANCELLED', name='paymentstatus')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    """Create billing tables."""

    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False),
        sa.Column('role', user_role, nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'stores',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('owner_id', sa.Uuid(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_stores'),
        sa.ForeignKeyConstraint(
            ['owner_id'], ['users.id'],
            name='fk_stores_owner_id_users', ondelete='RESTRICT',
        ),
    )
    op.create_index('ix_stores_owner_id', 'stores', ['owner_id'])

    op.create_table(
        'staff_store_permissions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('store_id', sa.Uuid(), nullable=False),
        sa.Column('preset', sa.String(50), nullable=True),
        sa.Column('permissions', postgresql.JSONB(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_staff_store_permissions'),
        sa.ForeignKeyConstraint(
            ['user_id'], ['users.id'],
            name='fk_staff_store_permissions_user_id_users', ondelete='CASCADE',
        ),
        sa.ForeignKeyConstraint(
            ['store_id'], ['stores.id'],
            name='fk_staff_store_permissions_store_id_stores', ondelete='CASCADE',
        ),
        sa.UniqueConstraint('user_id', 'store_id', name='uq_staff_store_permissions_user_store'),
    )
    op.create_index('ix_staff_store_permissions_user_id', 'staff_store_permissions', ['user_id'])
    op.create_index('ix_staff_store_permissions_store_id', 'staff_store_permissions', ['store_id'])

    op.create_table(
        'service_requests',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('store_id', sa.Uuid(), nullable=False),
        sa.Column('bike_description', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', request_status, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_service_requests'),
        sa.ForeignKeyConstraint(
            ['customer_id'], ['users.id'],
            name='fk_service_requests_customer_id_users', ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['store_id'], ['stores.id'],
            name='fk_service_requests_store_id_stores', ondelete='RESTRICT',
        ),
    )
    op.create_index('ix_service_requests_customer_id', 'service_requests', ['customer_id'])
    op.create_index('ix_service_requests_store_id', 'service_requests', ['store_id'])
    op.create_index('ix_service_requests_status', 'service_requests', ['status'])

    op.create_table(
        'service_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('service_request_id', sa.Uuid(), nullable=False),
        sa.Column('status', record_status, nullable=False),
        sa.Column('work_summary', sa.Text(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_service_records'),
        sa.ForeignKeyConstraint(
            ['service_request_id'], ['service_requests.id'],
            name='fk_service_records_service_request_id_service_requests', ondelete='CASCADE',
        ),
    )
    op.create_index('ix_service_records_service_request_id', 'service_records', ['service_request_id'])

    op.create_table(
        'quotations',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('quotation_number', sa.String(50), nullable=False),
        sa.Column('service_request_id', sa.Uuid(), nullable=False),
        sa.Column('line_items', postgresql.JSONB(), nullable=False),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False),
        sa.Column('tax_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('total', sa.Numeric(15, 2), nullable=False),
        sa.Column('valid_until', sa.DateTime(), nullable=False),
        sa.Column('status', quotation_status, nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_id', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_quotations'),
        sa.ForeignKeyConstraint(
            ['service_request_id'], ['service_requests.id'],
            name='fk_quotations_service_request_id_service_requests', ondelete='RESTRICT',
        ),
    )
    op.create_index('ix_quotations_quotation_number', 'quotations', ['quotation_number'], unique=True)
    op.create_index('ix_quotations_service_request_id', 'quotations', ['service_request_id'])
    op.create_index('ix_quotations_valid_until', 'quotations', ['valid_until'])
    op.create_index('ix_quotations_status', 'quotations', ['status'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('invoice_number', sa.String(50), nullable=False),
        sa.Column('service_record_id', sa.Uuid(), nullable=False),
        sa.Column('quotation_id', sa.Uuid(), nullable=True),
        sa.Column('line_items', postgresql.JSONB(), nullable=False),
        sa.Column('subtotal', sa.Numeric(15, 2), nullable=False),
        sa.Column('tax_rate', sa.Numeric(5, 2), nullable=False),
        sa.Column('tax_amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('total', sa.Numeric(15, 2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(15, 2), nullable=False),
        sa.Column('payment_status', payment_status, nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_id', sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_invoices'),
        sa.ForeignKeyConstraint(
            ['service_record_id'], ['service_records.id'],
            name='fk_invoices_service_record_id_service_records', ondelete='RESTRICT',
        ),
        sa.ForeignKeyConstraint(
            ['quotation_id'], ['quotations.id'],
            name='fk_invoices_quotation_id_quotations', ondelete='SET NULL',
        ),
        sa.UniqueConstraint('service_record_id', name='uq_invoices_service_record_id'),
    )
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'], unique=True)
    op.create_index('ix_invoices_payment_status', 'invoices', ['payment_status'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])


def downgrade() -> None:
    """Drop billing tables."""
    op.drop_table('invoices')
    op.drop_table('quotations')
    op.drop_table('service_records')
    op.drop_table('service_requests')
    op.drop_table('staff_store_permissions')
    op.drop_table('stores')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (payment_status, quotation_status, record_status, request_status, user_role):
        enum_type.drop(bind, checkfirst=True)

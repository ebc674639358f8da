"""Supplier credit ledger: suppliers, purchase orders, ledger entries, payment allocations

Revision ID: 20260301_supplier_credit_ledger
Revises:
Create Date: 2026-03-01
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20260301_supplier_credit_ledger"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "suppliers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("contact_phone", sa.String(64), nullable=True),
        sa.Column("outstanding_balance", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="uq_suppliers_code"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("suppliers", schema=None) as batch_op:
        batch_op.create_index("ix_suppliers_active", ["is_active"], unique=False)

    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("purchase_number", sa.String(64), nullable=False),
        sa.Column("total", sa.Numeric(14, 2), nullable=False),
        sa.Column("paid_amount", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="unpaid"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("purchase_number", name="uq_purchase_orders_number"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("purchase_orders", schema=None) as batch_op:
        batch_op.create_index("ix_purchase_orders_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_purchase_orders_supplier_status", ["supplier_id", "payment_status"], unique=False)

    op.create_table(
        "supplier_ledger_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("supplier_id", sa.Integer(), nullable=False),
        sa.Column("purchase_order_id", sa.Integer(), nullable=True),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("signed_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("running_balance", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("paid_amount", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_status", sa.String(16), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["supplier_id"], ["suppliers.id"]),
        sa.ForeignKeyConstraint(["purchase_order_id"], ["purchase_orders.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("supplier_ledger_entries", schema=None) as batch_op:
        batch_op.create_index("ix_supplier_ledger_entries_supplier_id", ["supplier_id"], unique=False)
        batch_op.create_index("ix_supplier_ledger_entries_purchase_order_id", ["purchase_order_id"], unique=False)
        batch_op.create_index("ix_supplier_ledger_entries_kind", ["kind"], unique=False)
        batch_op.create_index("ix_supplier_ledger_supplier_order", ["supplier_id", "created_at", "id"], unique=False)
        batch_op.create_index("ix_supplier_ledger_supplier_status", ["supplier_id", "payment_status"], unique=False)

    op.create_table(
        "supplier_payment_allocations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("payment_entry_id", sa.Integer(), nullable=False),
        sa.Column("allocated_entry_id", sa.Integer(), nullable=False),
        sa.Column("allocated_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(["payment_entry_id"], ["supplier_ledger_entries.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["allocated_entry_id"], ["supplier_ledger_entries.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("payment_entry_id", "allocated_entry_id", name="uq_supplier_alloc_pair"),
        sa.CheckConstraint("allocated_amount > 0", name="ck_supplier_alloc_positive"),
        sqlite_autoincrement=True,
    )

    with op.batch_alter_table("supplier_payment_allocations", schema=None) as batch_op:
        batch_op.create_index("ix_supplier_payment_allocations_payment_entry_id", ["payment_entry_id"], unique=False)
        batch_op.create_index("ix_supplier_payment_allocations_allocated_entry_id", ["allocated_entry_id"], unique=False)


def downgrade():
    op.drop_table("supplier_payment_allocations")
    op.drop_table("supplier_ledger_entries")
    op.drop_table("purchase_orders")
    op.drop_table("suppliers")

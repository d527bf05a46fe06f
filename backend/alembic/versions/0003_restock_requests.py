from alembic import op
import sqlalchemy as sa


revision = "0003_restock_requests"
down_revision = "0002_credit_ledger"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "restock_requests",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column("outlet_id", sa.Integer(), nullable=False, index=True),
        sa.Column("product_id", sa.Integer(), nullable=False, index=True),
        sa.Column("current_quantity", sa.Integer(), nullable=False),
        sa.Column("requested_quantity", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(500), nullable=False, server_default="Stock replenishment"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        sa.Column("admin_note", sa.String(500), nullable=True),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.Column("processed_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["outlet_id"], ["outlets.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["processed_by"], ["users.id"], ondelete="SET NULL"),
        sa.CheckConstraint("requested_quantity >= 1", name="ck_restock_requested_quantity"),
    )


def downgrade() -> None:
    op.drop_table("restock_requests")

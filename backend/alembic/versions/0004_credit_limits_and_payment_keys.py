from alembic import op
import sqlalchemy as sa


revision = "0004_credit_limits_and_payment_keys"
down_revision = "0003_restock_requests"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("users", sa.Column("credit_limit", sa.Numeric(12, 2), nullable=True))
    op.add_column("credit_payments", sa.Column("idempotency_key", sa.String(100), nullable=True))
    op.create_unique_constraint(
        "uq_credit_payments_idempotency",
        "credit_payments",
        ["credit_id", "idempotency_key"],
    )


def downgrade() -> None:
    op.drop_constraint("uq_credit_payments_idempotency", "credit_payments", type_="unique")
    op.drop_column("credit_payments", "idempotency_key")
    op.drop_column("users", "credit_limit")

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from breakfast_api.core.time_utils import utcnow
from breakfast_api.models.outlet import Base


class CreditPayment(Base):
    __tablename__ = "credit_payments"
    __table_args__ = (
        UniqueConstraint("credit_id", "idempotency_key", name="uq_credit_payments_idempotency"),
    )

    id = Column(Integer, primary_key=True, index=True)
    credit_id = Column(Integer, ForeignKey("credit_transactions.id", ondelete="RESTRICT"), nullable=False, index=True)

    amount = Column(Numeric(12, 2), nullable=False)
    notes = Column(String(500), nullable=True)
    # Client-chosen key; a retried request with the same key is not applied twice
    idempotency_key = Column(String(100), nullable=True)

    # User who registered the payment
    recorded_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Payment date
    created_at = Column(DateTime, nullable=False, default=utcnow)

    credit = relationship("CreditTransaction", back_populates="payments")

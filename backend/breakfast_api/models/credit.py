from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, String, CheckConstraint
from sqlalchemy.orm import relationship

from breakfast_api.core.time_utils import utcnow
from breakfast_api.models.outlet import Base


CREDIT_STATUSES = ("pending", "partially_paid", "paid", "overdue")


class CreditTransaction(Base):
    __tablename__ = "credit_transactions"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_credit_amount_positive"),
        CheckConstraint(
            "remaining_amount >= 0 AND remaining_amount <= amount",
            name="ck_credit_remaining_bounds",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True)
    outlet_id = Column(Integer, ForeignKey("outlets.id", ondelete="RESTRICT"), nullable=False, index=True)

    # Fixed at creation
    amount = Column(Numeric(12, 2), nullable=False)
    # Only ever decremented by a recorded payment
    remaining_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    due_date = Column(DateTime, nullable=False, index=True)

    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    user = relationship("User")
    order = relationship("Order")
    outlet = relationship("Outlet")
    payments = relationship(
        "CreditPayment",
        back_populates="credit",
        order_by="CreditPayment.id",
    )

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from breakfast_api.core.time_utils import utcnow
from breakfast_api.models.outlet import Base


RESTOCK_STATUSES = ("pending", "approved", "rejected")


class RestockRequest(Base):
    __tablename__ = "restock_requests"

    id = Column(Integer, primary_key=True, index=True)
    outlet_id = Column(Integer, ForeignKey("outlets.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    current_quantity = Column(Integer, nullable=False)  # stock when requested
    requested_quantity = Column(Integer, nullable=False)
    reason = Column(String(500), nullable=False, default="Stock replenishment")
    status = Column(String(20), nullable=False, default="pending", index=True)
    admin_note = Column(String(500), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    processed_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    outlet = relationship("Outlet")
    product = relationship("Product")

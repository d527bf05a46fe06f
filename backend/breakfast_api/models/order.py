from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, String, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from breakfast_api.core.time_utils import utcnow
from breakfast_api.models.outlet import Base


ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        UniqueConstraint("outlet_id", "order_number", name="uq_orders_outlet_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String(50), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    outlet_id = Column(Integer, ForeignKey("outlets.id", ondelete="CASCADE"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)

    # Shipping
    shipping_full_name = Column(String(255), nullable=False)
    shipping_address = Column(String(200), nullable=False)
    shipping_city = Column(String(100), nullable=False)
    shipping_state = Column(String(100), nullable=True)
    shipping_postal_code = Column(String(20), nullable=True)
    shipping_phone = Column(String(50), nullable=False)

    payment_method = Column(String(50), nullable=False)
    payment_result = Column(JSON, nullable=True)  # gateway echo, stored as received

    items_price = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_price = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)

    delivered_at = Column(DateTime, nullable=True)
    status_updated_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)
    updated_at = Column(DateTime, nullable=True, onupdate=utcnow)

    user = relationship("User")
    outlet = relationship("Outlet")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan", order_by="OrderItem.id")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    # Reference only; name/price/image are copied at order time
    product_id = Column(Integer, ForeignKey("products.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False, default=0)
    total_price = Column(Numeric(12, 2), nullable=False, default=0)
    image = Column(String(500), nullable=True)

    order = relationship("Order", back_populates="items")


class OrderCounter(Base):
    __tablename__ = "order_counters"
    __table_args__ = (
        UniqueConstraint("outlet_id", name="uq_order_counters_outlet"),
    )

    id = Column(Integer, primary_key=True, index=True)
    outlet_id = Column(Integer, ForeignKey("outlets.id", ondelete="CASCADE"), nullable=False, index=True)
    next_seq = Column(Integer, nullable=False, default=1)

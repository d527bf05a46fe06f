from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, UniqueConstraint

from breakfast_api.core.time_utils import utcnow
from breakfast_api.models.outlet import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("email", name="uq_users_email"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), nullable=False, default="user")  # user | outlet | admin
    # NULL: no limit on deferred-payment orders
    credit_limit = Column(Numeric(12, 2), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

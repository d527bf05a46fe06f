from sqlalchemy import Column, Integer, String, DateTime, ForeignKey

from breakfast_api.core.time_utils import utcnow
from breakfast_api.models.outlet import Base


class StatusHistory(Base):
    __tablename__ = "status_history"

    id = Column(Integer, primary_key=True, index=True)

    # "order", "credit" or "restock"
    entity_type = Column(String(20), nullable=False, index=True)
    entity_id = Column(Integer, nullable=False, index=True)

    old_status = Column(String(50), nullable=True)  # NULL on creation
    new_status = Column(String(50), nullable=False)

    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    notes = Column(String(500), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint

from breakfast_api.core.time_utils import utcnow
from breakfast_api.models.outlet import Base


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (
        UniqueConstraint("outlet_id", "name", name="uq_categories_outlet_name"),
    )

    id = Column(Integer, primary_key=True, index=True)
    # NULL outlet: global category managed by admins
    outlet_id = Column(Integer, ForeignKey("outlets.id", ondelete="CASCADE"), nullable=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

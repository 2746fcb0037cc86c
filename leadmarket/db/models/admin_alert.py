from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base


class AdminAlert(Base):
    """Operational alert for manual follow-up (orphan lead, failed payment, ...)."""
    __tablename__ = "admin_alerts"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    resolved_at = Column(DateTime, nullable=True)

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text

from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base


class Notification(Base):
    """In-app notification. Written once here; read/dismissed by the client app."""
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    related_id = Column(Integer, nullable=True)
    meta = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    read_at = Column(DateTime, nullable=True)

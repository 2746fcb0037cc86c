from sqlalchemy import Column, DateTime, ForeignKey, Integer

from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base


class Conversation(Base):
    """Message channel between owner and the accepted provider of a lead."""
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    lead_id = Column(Integer, ForeignKey("leads.id"), unique=True, nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import validates

from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base

RESOURCE_TYPES = ("lead", "proposal", "dashboard", "conversation", "rating")


class AccessToken(Base):
    """Opaque, expiring, resource-scoped credential behind email deep links."""
    __tablename__ = "access_tokens"

    id = Column(Integer, primary_key=True, index=True)
    token = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    resource_type = Column(String, nullable=False)
    resource_id = Column(Integer, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    meta = Column("metadata", JSON, nullable=True)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @validates("resource_type")
    def validate_resource_type(self, key, value):
        if value not in RESOURCE_TYPES:
            raise ValueError(f"Unknown resource type: {value!r}")
        return value

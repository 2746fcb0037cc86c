from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import validates

from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base

USER_ROLES = ("owner", "provider", "admin")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    role = Column(String, nullable=False, default="owner")  # owner | provider | admin
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @validates("email")
    def validate_email(self, key, value):
        value = (value or "").strip().lower()
        if "@" not in value:
            raise ValueError(f"Invalid email address: {value!r}")
        return value

    @validates("role")
    def validate_role(self, key, value):
        if value not in USER_ROLES:
            raise ValueError(f"Invalid role: {value!r}")
        return value

    @property
    def display_name(self) -> str:
        return self.full_name or self.email.split("@")[0]

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String
from sqlalchemy.orm import validates

from leadmarket.core.taxonomy import is_canton_code, is_postal_code, normalize_category
from leadmarket.core.timeutils import utcnow
from leadmarket.db.base import Base

VERIFICATION_STATUSES = ("pending", "approved", "rejected")


class ProviderProfile(Base):
    __tablename__ = "provider_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    company_name = Column(String, nullable=True)
    categories = Column(JSON, nullable=False, default=list)
    # Canton codes and/or 4-digit postal codes
    service_areas = Column(JSON, nullable=False, default=list)
    verification_status = Column(String, nullable=False, default="pending", index=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    @validates("categories")
    def validate_categories(self, key, value):
        return sorted({normalize_category(c) for c in value or [] if normalize_category(c)})

    @validates("service_areas")
    def validate_service_areas(self, key, value):
        areas = set()
        for area in value or []:
            area = str(area).strip()
            if is_canton_code(area):
                areas.add(area.upper())
            elif is_postal_code(area):
                areas.add(area)
            else:
                raise ValueError(f"Service area must be a canton or postal code: {area!r}")
        return sorted(areas)

    @validates("verification_status")
    def validate_verification_status(self, key, value):
        if value not in VERIFICATION_STATUSES:
            raise ValueError(f"Invalid verification status: {value!r}")
        return value

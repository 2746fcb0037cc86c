"""
Access token grantor.

Issues and validates opaque, expiring, resource-scoped tokens used in
email deep links (passwordless actions).
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from leadmarket.core.config import Settings
from leadmarket.core.errors import AuthError, ValidationError
from leadmarket.core.logging_config import mask_token
from leadmarket.core.timeutils import utcnow
from leadmarket.db.models.access_token import AccessToken, RESOURCE_TYPES

logger = logging.getLogger(__name__)

DEEP_LINK_TEMPLATES: Dict[str, str] = {
    "lead": "/opportunity/{resource_id}?token={token}",
    "proposal": "/proposals/{resource_id}?token={token}",
    "dashboard": "/dashboard?token={token}",
    "conversation": "/messages/{resource_id}?token={token}",
    "rating": "/rate/{resource_id}?token={token}",
}


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at: datetime
    deep_link: str


@dataclass(frozen=True)
class TokenClaims:
    valid: bool
    user_id: int
    resource_type: str
    resource_id: Optional[int]
    metadata: Optional[Dict[str, Any]]


def build_deep_link(settings: Settings, resource_type: str, token: str, resource_id: Optional[int] = None) -> str:
    template = DEEP_LINK_TEMPLATES[resource_type]
    path = template.format(resource_id="" if resource_id is None else resource_id, token=token)
    return f"{settings.frontend_url}{path}"


def issue_token(
    db: Session,
    settings: Settings,
    user_id: int,
    resource_type: str,
    resource_id: Optional[int] = None,
    ttl_days: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> IssuedToken:
    """
    Create and persist a new access token.

    The row is added to the caller's session; it becomes durable when the
    caller commits.

    Args:
        db: Database session
        settings: Application settings (frontend URL for the deep link)
        user_id: Owner of the token
        resource_type: lead | proposal | dashboard | conversation | rating
        resource_id: Optional id of the resource the token grants access to
        ttl_days: Lifetime in days (defaults to the lead token TTL)
        metadata: Optional JSON payload returned on validation

    Returns:
        IssuedToken with the opaque token, its expiry and a deep link
    """
    if resource_type not in RESOURCE_TYPES:
        raise ValidationError(f"Unbekannter Ressourcentyp: {resource_type}")
    ttl_days = settings.lead_token_ttl_days if ttl_days is None else ttl_days
    if ttl_days <= 0:
        raise ValidationError("Die Gültigkeitsdauer muss positiv sein.")

    token = secrets.token_urlsafe(32)
    expires_at = utcnow() + timedelta(days=ttl_days)

    db.add(AccessToken(
        token=token,
        user_id=user_id,
        resource_type=resource_type,
        resource_id=resource_id,
        expires_at=expires_at,
        meta=metadata,
    ))
    db.flush()

    logger.info(
        f"Access token issued: token={mask_token(token)}, user_id={user_id}, "
        f"resource_type={resource_type}, resource_id={resource_id}, ttl_days={ttl_days}"
    )
    return IssuedToken(
        token=token,
        expires_at=expires_at,
        deep_link=build_deep_link(settings, resource_type, token, resource_id),
    )


def validate_token(db: Session, settings: Settings, token: str) -> TokenClaims:
    """
    Validate a token and return its claims.

    Single-use types (settings.single_use_token_types) are consumed here with a
    conditional update, so only one of several concurrent validations wins.
    The caller must commit for consumption to persist.

    Raises:
        AuthError: reason "not_found" (unknown or already consumed) or "expired"
    """
    if not token:
        raise AuthError("not_found")

    record = db.query(AccessToken).filter(AccessToken.token == token).first()
    if record is None or record.used_at is not None:
        logger.info(f"Token rejected (not found or used): token={mask_token(token)}")
        raise AuthError("not_found")

    now = utcnow()
    if record.expires_at <= now:
        logger.info(f"Token rejected (expired): token={mask_token(token)}")
        raise AuthError("expired")

    if record.resource_type in settings.single_use_token_types:
        result = db.execute(
            update(AccessToken)
            .where(AccessToken.id == record.id, AccessToken.used_at.is_(None))
            .values(used_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info(f"Token rejected (consumed concurrently): token={mask_token(token)}")
            raise AuthError("not_found")

    logger.info(
        f"Token validated: token={mask_token(token)}, user_id={record.user_id}, "
        f"resource_type={record.resource_type}, resource_id={record.resource_id}"
    )
    return TokenClaims(
        valid=True,
        user_id=record.user_id,
        resource_type=record.resource_type,
        resource_id=record.resource_id,
        metadata=record.meta,
    )

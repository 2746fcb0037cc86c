import hashlib
import hmac
import logging
from datetime import datetime, timedelta
from typing import Optional

from jose import jwt, JWTError

from leadmarket.core.config import Settings
from leadmarket.core.errors import AuthError

logger = logging.getLogger(__name__)


def create_access_token(data: dict, settings: Settings, expires_delta: timedelta = None) -> str:
    to_encode = data.copy()
    expire = datetime.utcnow() + (expires_delta or timedelta(minutes=60))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str, settings: Settings) -> dict:
    """Decode a session JWT, raising AuthError on any failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        raise AuthError("invalid_session", "Ungültige Sitzung.")


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Hex HMAC-SHA256 of payload."""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_webhook_signature(secret: str, payload: bytes, signature: Optional[str]) -> None:
    """
    Verify a gateway callback signature over the raw request body.

    Raises:
        AuthError (403): signature missing, secret not configured, or mismatch
    """
    if not signature:
        logger.warning("Webhook rejected: missing signature header")
        raise AuthError("missing_signature", status_code=403)
    if not secret:
        # Never accept callbacks when no secret is configured
        logger.error("Webhook rejected: signing secret is not configured")
        raise AuthError("invalid_signature", status_code=403)

    expected = compute_hmac_sha256(secret, payload)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        logger.warning("Webhook rejected: signature mismatch")
        raise AuthError("invalid_signature", status_code=403)

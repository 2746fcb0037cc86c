import hmac
import logging
from typing import Callable, Optional

from fastapi import Depends, Header
from fastapi.security import OAuth2PasswordBearer

from leadmarket.core.config import Settings, get_settings
from leadmarket.core.errors import AuthError
from leadmarket.core.security import decode_access_token
from leadmarket.db.session import get_session_factory
from leadmarket.services.email_service import EmailClient
from leadmarket.services.outbox_worker import deliver_pending

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


def get_db():
    """Database session dependency."""
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()


def get_app_settings() -> Settings:
    """Settings dependency; tests override this with their own Settings."""
    return get_settings()


def get_email_client(settings: Settings = Depends(get_app_settings)):
    client = EmailClient(settings)
    try:
        yield client
    finally:
        client.close()


def get_outbox_runner(settings: Settings = Depends(get_app_settings)) -> Callable[[], None]:
    """
    Callable that drains the email outbox with its own session and client.

    Scheduled as a background task after a route has committed.
    """
    def run():
        db = get_session_factory()()
        client = EmailClient(settings)
        try:
            deliver_pending(db, client, settings)
        except Exception as e:
            logger.error(f"Background outbox drain failed: {e}", exc_info=True)
        finally:
            client.close()
            db.close()

    return run


def get_current_user_id(
    token: str = Depends(oauth2_scheme),
    settings: Settings = Depends(get_app_settings),
) -> int:
    """User id from the Bearer JWT (`sub` claim)."""
    payload = decode_access_token(token, settings)
    subject = payload.get("sub")
    try:
        return int(subject)
    except (TypeError, ValueError):
        raise AuthError("invalid_session", "Ungültige Sitzung.")


def require_cron_key(
    x_cron_key: Optional[str] = Header(None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """Guard for scheduler-triggered job endpoints."""
    if not settings.cron_secret or not x_cron_key:
        raise AuthError("forbidden", status_code=403)
    if not hmac.compare_digest(x_cron_key, settings.cron_secret):
        raise AuthError("forbidden", status_code=403)

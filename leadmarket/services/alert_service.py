import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from leadmarket.db.models.admin_alert import AdminAlert

logger = logging.getLogger(__name__)


def raise_alert(
    db: Session,
    type: str,
    title: str,
    message: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> AdminAlert:
    """
    Record an operational alert for manual follow-up.

    Written into the caller's session; also logged at WARNING so log-based
    alerting picks it up even before the row is committed.
    """
    msg = (message or "").strip() or "(no detail)"
    logger.warning(f"[alert] {type}: {title} - {msg}")
    alert = AdminAlert(type=type, title=title, message=msg, meta=metadata)
    db.add(alert)
    return alert

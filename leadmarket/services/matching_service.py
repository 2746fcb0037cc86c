"""
Lead-to-provider matching.

Finds approved providers whose categories and service areas cover a lead and
notifies each of them with a lead-scoped access token. Per-provider failures
are isolated in savepoints and counted; the batch always runs to completion.
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from leadmarket.core.config import Settings
from leadmarket.core.errors import AuthError, NotFoundError, ValidationError
from leadmarket.core.taxonomy import area_matches, category_matches
from leadmarket.core.timeutils import to_naive_utc, utcnow
from leadmarket.db.models.lead import Lead
from leadmarket.db.models.provider_profile import ProviderProfile
from leadmarket.db.models.user import User
from leadmarket.services import email_templates
from leadmarket.services.alert_service import raise_alert
from leadmarket.services.notification_service import claim_receipt, lead_key, notify_in_app, queue_email
from leadmarket.services.token_service import issue_token

logger = logging.getLogger(__name__)


def find_eligible_providers(db: Session, lead: Lead) -> List[ProviderProfile]:
    """
    Approved providers matching the lead on both category and service area.

    Category and area tests run in Python: the JSON list columns are not
    portably queryable, and the approved-provider set is small.
    """
    candidates = (
        db.query(ProviderProfile)
        .filter(ProviderProfile.verification_status == "approved")
        .order_by(ProviderProfile.id)
        .all()
    )
    eligible = [
        profile for profile in candidates
        if area_matches(profile.service_areas, lead.canton, lead.postal_code)
        and category_matches(lead.category, profile.categories)
    ]
    logger.info(
        f"Matching lead_id={lead.id} category={lead.category} canton={lead.canton} "
        f"zip={lead.postal_code}: {len(candidates)} approved, {len(eligible)} eligible"
    )
    return eligible


def _notify_provider(db: Session, settings: Settings, lead: Lead, profile: ProviderProfile) -> bool:
    """Notify one provider. Returns False if already notified for this lead."""
    if not claim_receipt(db, lead_key(lead.id), profile.user_id, "new_lead"):
        return False

    user = db.get(User, profile.user_id)
    if user is None:
        raise NotFoundError(f"User {profile.user_id} for provider profile {profile.id} not found")

    issued = issue_token(
        db, settings,
        user_id=profile.user_id,
        resource_type="lead",
        resource_id=lead.id,
        ttl_days=settings.lead_token_ttl_days,
    )
    notify_in_app(
        db, profile.user_id,
        type="new_lead",
        title="Neue Anfrage",
        message=f"Neue Anfrage in Ihrer Region: {lead.title}",
        related_id=lead.id,
        metadata={"category": lead.category, "canton": lead.canton},
    )
    subject, html_body = email_templates.new_lead(profile.company_name or user.display_name, lead, issued.deep_link)
    queue_email(db, user.email, subject, html_body)
    return True


def notify_matching_providers(db: Session, settings: Settings, lead: Lead) -> Dict[str, int]:
    """
    Match a newly activated lead and notify every eligible provider.

    Safe to re-run: providers already notified for this lead are skipped via
    the notification receipt ledger. Commits once at the end.

    Returns:
        Counts: eligible, notified, skipped, errors
    """
    eligible = find_eligible_providers(db, lead)
    summary = {"eligible": len(eligible), "notified": 0, "skipped": 0, "errors": 0}

    if not eligible:
        raise_alert(
            db,
            type="orphan_lead",
            title="Anfrage ohne passende Handwerker",
            message=f"Lead #{lead.id} ({lead.category}, {lead.canton} {lead.postal_code}) hat keine passenden Handwerker.",
            metadata={"lead_id": lead.id, "category": lead.category, "canton": lead.canton},
        )
        db.commit()
        return summary

    for profile in eligible:
        try:
            with db.begin_nested():
                if _notify_provider(db, settings, lead, profile):
                    summary["notified"] += 1
                else:
                    summary["skipped"] += 1
        except Exception as e:
            summary["errors"] += 1
            logger.error(f"Failed to notify provider user_id={profile.user_id} for lead_id={lead.id}: {e}", exc_info=True)

    db.commit()
    logger.info(f"Lead notifications complete for lead_id={lead.id}: {summary}")
    return summary


def publish_lead(
    db: Session,
    settings: Settings,
    lead_id: int,
    owner_id: int,
    deadline: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Activate a draft lead and run matching.

    Publishing an already active lead only re-runs matching (idempotent).

    Raises:
        NotFoundError: lead does not exist
        AuthError (403): caller is not the owner
        ValidationError: lead is not draft/active, or deadline is in the past
    """
    lead = db.get(Lead, lead_id)
    if lead is None:
        raise NotFoundError("Anfrage nicht gefunden.")
    if lead.owner_id != owner_id:
        raise AuthError("forbidden", status_code=403)
    if lead.status not in ("draft", "active"):
        raise ValidationError("Diese Anfrage kann nicht mehr veröffentlicht werden.")

    if lead.status == "draft":
        now = utcnow()
        deadline = to_naive_utc(deadline) if deadline else now + timedelta(days=settings.proposal_window_days)
        if deadline <= now:
            raise ValidationError("Die Angebotsfrist muss in der Zukunft liegen.")
        lead.proposal_deadline = deadline
        lead.status = "active"
        db.commit()
        logger.info(f"Lead published: lead_id={lead.id}, deadline={deadline.isoformat()}")

    return notify_matching_providers(db, settings, lead)

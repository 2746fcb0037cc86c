"""
Lead expiry scheduler.

Two daily passes, both safe to re-run:
- expiry pass: active leads past their deadline become expired
- reminder pass: leads closing within the lookahead window get owner
  reminders and "last chance" nudges to providers who viewed but never bid
"""
import logging
from datetime import timedelta
from typing import Dict

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from leadmarket.core.config import Settings
from leadmarket.core.timeutils import utcnow
from leadmarket.db.models.lead import Lead
from leadmarket.db.models.lead_view import LeadView
from leadmarket.db.models.proposal import Proposal
from leadmarket.db.models.user import User
from leadmarket.services import email_templates
from leadmarket.services.notification_service import claim_receipt, lead_key, notify_in_app, queue_email
from leadmarket.services.proposal_service import withdraw_pending_for_lead
from leadmarket.services.token_service import issue_token

logger = logging.getLogger(__name__)


def _expire_lead(db: Session, settings: Settings, lead: Lead) -> int:
    lead.status = "expired"
    db.flush()

    if claim_receipt(db, lead_key(lead.id), lead.owner_id, "lead_expired"):
        notify_in_app(
            db, lead.owner_id,
            type="lead_expired",
            title="Angebotsfrist abgelaufen",
            message=f"Die Angebotsfrist für \"{lead.title}\" ist abgelaufen.",
            related_id=lead.id,
        )
        owner = db.get(User, lead.owner_id)
        if owner:
            issued = issue_token(db, settings, user_id=owner.id, resource_type="dashboard")
            subject, html_body = email_templates.lead_expired(owner.display_name, lead, issued.deep_link)
            queue_email(db, owner.email, subject, html_body)

    return len(withdraw_pending_for_lead(db, lead))


def run_expiry_pass(db: Session, settings: Settings, now=None) -> Dict[str, int]:
    """
    Expire active leads whose proposal deadline has passed.

    Each lead runs in its own savepoint; one failing lead is logged and
    counted, the rest still expire.

    Returns:
        Counts: expired, proposals_withdrawn, errors
    """
    now = now or utcnow()
    leads = (
        db.query(Lead)
        .filter(Lead.status == "active", Lead.proposal_deadline < now)
        .order_by(Lead.proposal_deadline, Lead.id)
        .all()
    )

    summary = {"expired": 0, "proposals_withdrawn": 0, "errors": 0}
    for lead in leads:
        try:
            with db.begin_nested():
                summary["proposals_withdrawn"] += _expire_lead(db, settings, lead)
            summary["expired"] += 1
        except Exception as e:
            summary["errors"] += 1
            logger.error(f"Failed to expire lead_id={lead.id}: {e}", exc_info=True)

    db.commit()
    logger.info(f"Lead expiry pass complete: {summary}")
    return summary


def _remind_lead(db: Session, settings: Settings, lead: Lead) -> Dict[str, int]:
    counts = {"owner_reminders": 0, "provider_nudges": 0}

    pending_count = (
        db.query(func.count(Proposal.id))
        .filter(Proposal.lead_id == lead.id, Proposal.status == "pending")
        .scalar()
    )
    if pending_count and claim_receipt(db, lead_key(lead.id), lead.owner_id, "deadline_owner"):
        notify_in_app(
            db, lead.owner_id,
            type="deadline_reminder",
            title="Frist läuft bald ab",
            message=f"Für \"{lead.title}\" warten {pending_count} Offerten auf Ihre Antwort.",
            related_id=lead.id,
            metadata={"pending_count": pending_count},
        )
        owner = db.get(User, lead.owner_id)
        if owner:
            link = f"{settings.frontend_url}/leads/{lead.id}/proposals"
            subject, html_body = email_templates.deadline_owner_reminder(owner.display_name, lead, pending_count, link)
            queue_email(db, owner.email, subject, html_body)
        counts["owner_reminders"] += 1

    proposed = select(Proposal.provider_id).where(Proposal.lead_id == lead.id)
    viewers = (
        db.query(User)
        .join(LeadView, LeadView.viewer_id == User.id)
        .filter(LeadView.lead_id == lead.id, LeadView.viewer_id.notin_(proposed))
        .order_by(User.id)
        .all()
    )
    for viewer in viewers:
        if not claim_receipt(db, lead_key(lead.id), viewer.id, "deadline_viewer"):
            continue
        issued = issue_token(
            db, settings,
            user_id=viewer.id,
            resource_type="lead",
            resource_id=lead.id,
            ttl_days=settings.lead_token_ttl_days,
        )
        notify_in_app(
            db, viewer.id,
            type="deadline_reminder",
            title="Letzte Chance",
            message=f"Die Frist für \"{lead.title}\" läuft bald ab. Reichen Sie jetzt Ihre Offerte ein.",
            related_id=lead.id,
        )
        subject, html_body = email_templates.deadline_provider_nudge(viewer.display_name, lead, issued.deep_link)
        queue_email(db, viewer.email, subject, html_body)
        counts["provider_nudges"] += 1

    return counts


def run_reminder_pass(db: Session, settings: Settings, now=None) -> Dict[str, int]:
    """
    Send deadline reminders for active leads closing within the lookahead.

    Returns:
        Counts: leads, owner_reminders, provider_nudges, errors
    """
    now = now or utcnow()
    window_end = now + timedelta(hours=settings.reminder_lookahead_hours)
    leads = (
        db.query(Lead)
        .filter(
            Lead.status == "active",
            Lead.proposal_deadline > now,
            Lead.proposal_deadline <= window_end,
        )
        .order_by(Lead.proposal_deadline, Lead.id)
        .all()
    )

    summary = {"leads": len(leads), "owner_reminders": 0, "provider_nudges": 0, "errors": 0}
    for lead in leads:
        try:
            with db.begin_nested():
                counts = _remind_lead(db, settings, lead)
            summary["owner_reminders"] += counts["owner_reminders"]
            summary["provider_nudges"] += counts["provider_nudges"]
        except Exception as e:
            summary["errors"] += 1
            logger.error(f"Failed to send reminders for lead_id={lead.id}: {e}", exc_info=True)

    db.commit()
    logger.info(f"Deadline reminder pass complete: {summary}")
    return summary

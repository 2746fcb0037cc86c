"""
Proposal lifecycle.

pending -> accepted | rejected | withdrawn (all terminal).

Acceptance is the one mutual-exclusion point of the marketplace: the lead's
accepted slot is claimed with a conditional UPDATE, so of two concurrent
accepts on the same lead exactly one succeeds.
"""
import logging
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadmarket.core.config import Settings
from leadmarket.core.errors import (
    AuthError,
    ConflictError,
    MarketplaceError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from leadmarket.core.timeutils import utcnow
from leadmarket.db.models.conversation import Conversation
from leadmarket.db.models.lead import Lead
from leadmarket.db.models.lead_view import LeadView
from leadmarket.db.models.proposal import Proposal
from leadmarket.db.models.provider_profile import ProviderProfile
from leadmarket.db.models.user import User
from leadmarket.services import email_templates
from leadmarket.services.notification_service import claim_receipt, lead_key, notify_in_app, queue_email
from leadmarket.services.subscription_service import consume_proposal_quota
from leadmarket.services.token_service import issue_token

logger = logging.getLogger(__name__)

BATCH_ACTIONS = ("accept", "reject")


def _get_proposal_and_lead(db: Session, proposal_id: int):
    proposal = db.get(Proposal, proposal_id)
    if proposal is None:
        raise NotFoundError("Offerte nicht gefunden.")
    lead = db.get(Lead, proposal.lead_id)
    if lead is None:
        raise NotFoundError("Anfrage nicht gefunden.")
    return proposal, lead


def _require_owner(lead: Lead, actor_id: int):
    if lead.owner_id != actor_id:
        raise AuthError("forbidden", status_code=403)


def accept_proposal(db: Session, settings: Settings, proposal_id: int, owner_id: int) -> Conversation:
    """
    Accept a pending proposal on behalf of the lead owner.

    Steps, in one transaction:
    1. Claim the lead's accepted slot (only if still empty and lead active)
    2. Flip the proposal pending -> accepted (only if still pending)
    3. Create the conversation, notify both parties, queue emails

    Raises:
        NotFoundError: unknown proposal/lead
        AuthError (403): caller does not own the lead
        ConflictError: lead already decided or proposal no longer pending
    """
    proposal, lead = _get_proposal_and_lead(db, proposal_id)
    _require_owner(lead, owner_id)
    if proposal.status != "pending":
        raise ConflictError("Diese Offerte wurde bereits entschieden.")

    now = utcnow()
    claimed = db.execute(
        update(Lead)
        .where(
            Lead.id == lead.id,
            Lead.accepted_proposal_id.is_(None),
            Lead.status == "active",
        )
        .values(accepted_proposal_id=proposal.id, status="completed", updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if claimed.rowcount == 0:
        db.rollback()
        logger.info(f"Accept lost race: proposal_id={proposal_id}, lead_id={lead.id} already decided")
        raise ConflictError("Für diese Anfrage wurde bereits eine Offerte angenommen.")

    flipped = db.execute(
        update(Proposal)
        .where(Proposal.id == proposal.id, Proposal.status == "pending")
        .values(status="accepted", decided_at=now)
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount == 0:
        db.rollback()
        raise ConflictError("Diese Offerte wurde bereits entschieden.")

    db.expire(lead)
    db.expire(proposal)

    conversation = Conversation(lead_id=lead.id, owner_id=lead.owner_id, provider_id=proposal.provider_id)
    db.add(conversation)
    db.flush()

    owner = db.get(User, lead.owner_id)
    provider = db.get(User, proposal.provider_id)

    notify_in_app(
        db, proposal.provider_id,
        type="proposal_accepted",
        title="Offerte angenommen",
        message=f"Ihre Offerte für \"{lead.title}\" wurde angenommen. Die Kontaktdaten sind jetzt sichtbar.",
        related_id=proposal.id,
        metadata={"lead_id": lead.id, "conversation_id": conversation.id},
    )
    notify_in_app(
        db, lead.owner_id,
        type="proposal_accepted",
        title="Offerte angenommen",
        message=f"Sie haben eine Offerte für \"{lead.title}\" angenommen. Die Kontaktdaten sind jetzt sichtbar.",
        related_id=proposal.id,
        metadata={"lead_id": lead.id, "conversation_id": conversation.id},
    )

    if owner and provider:
        issued = issue_token(
            db, settings,
            user_id=provider.id,
            resource_type="conversation",
            resource_id=conversation.id,
            ttl_days=settings.conversation_token_ttl_days,
        )
        subject, html_body = email_templates.proposal_accepted_provider(provider.display_name, lead, owner, issued.deep_link)
        queue_email(db, provider.email, subject, html_body)
        subject, html_body = email_templates.proposal_accepted_owner(owner.display_name, lead, provider)
        queue_email(db, owner.email, subject, html_body)

    db.commit()
    logger.info(f"Proposal accepted: proposal_id={proposal.id}, lead_id={lead.id}, conversation_id={conversation.id}")
    return conversation


def reject_proposal(db: Session, proposal_id: int, owner_id: int) -> Proposal:
    """
    Reject a pending proposal. The provider gets a neutral message.

    Raises:
        NotFoundError, AuthError (403), ConflictError (not pending)
    """
    proposal, lead = _get_proposal_and_lead(db, proposal_id)
    _require_owner(lead, owner_id)

    flipped = db.execute(
        update(Proposal)
        .where(Proposal.id == proposal.id, Proposal.status == "pending")
        .values(status="rejected", decided_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    if flipped.rowcount == 0:
        db.rollback()
        raise ConflictError("Diese Offerte wurde bereits entschieden.")
    db.expire(proposal)

    notify_in_app(
        db, proposal.provider_id,
        type="proposal_rejected",
        title="Update zu Ihrer Offerte",
        message=f"Der Auftraggeber hat sich für \"{lead.title}\" anders entschieden.",
        related_id=proposal.id,
        metadata={"lead_id": lead.id},
    )
    provider = db.get(User, proposal.provider_id)
    if provider:
        subject, html_body = email_templates.proposal_rejected(provider.display_name, lead)
        queue_email(db, provider.email, subject, html_body)

    db.commit()
    logger.info(f"Proposal rejected: proposal_id={proposal.id}, lead_id={lead.id}")
    return proposal


def withdraw_pending_for_lead(db: Session, lead: Lead) -> List[int]:
    """
    System-initiated withdrawal of every pending proposal on a lead.

    One UPDATE for the whole lead; providers are notified that the
    opportunity closed. Does not commit (caller owns the transaction).

    Returns:
        Provider ids whose proposals were withdrawn
    """
    provider_ids = [
        row.provider_id for row in
        db.query(Proposal.provider_id)
        .filter(Proposal.lead_id == lead.id, Proposal.status == "pending")
        .all()
    ]
    if not provider_ids:
        return []

    db.execute(
        update(Proposal)
        .where(
            Proposal.lead_id == lead.id,
            Proposal.status == "pending",
            Proposal.provider_id.in_(provider_ids),
        )
        .values(status="withdrawn", decided_at=utcnow())
        .execution_options(synchronize_session=False)
    )

    providers = {u.id: u for u in db.query(User).filter(User.id.in_(provider_ids)).all()}
    for provider_id in provider_ids:
        if not claim_receipt(db, lead_key(lead.id), provider_id, "opportunity_closed"):
            continue
        notify_in_app(
            db, provider_id,
            type="lead_expired",
            title="Anfrage abgelaufen",
            message=f"Die Angebotsfrist für \"{lead.title}\" ist abgelaufen. Ihre Offerte wurde zurückgezogen.",
            related_id=lead.id,
            metadata={"lead_title": lead.title},
        )
        provider = providers.get(provider_id)
        if provider:
            subject, html_body = email_templates.opportunity_closed(provider.display_name, lead)
            queue_email(db, provider.email, subject, html_body)

    logger.info(f"Withdrew {len(provider_ids)} pending proposals for lead_id={lead.id}")
    return provider_ids


def withdraw_proposal(db: Session, proposal_id: int) -> bool:
    """
    System-initiated withdrawal of a single pending proposal. Does not commit.

    Returns:
        False if the proposal was no longer pending
    """
    proposal, lead = _get_proposal_and_lead(db, proposal_id)
    result = db.execute(
        update(Proposal)
        .where(Proposal.id == proposal.id, Proposal.status == "pending")
        .values(status="withdrawn", decided_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.expire(proposal)
    if result.rowcount == 0:
        return False

    if claim_receipt(db, lead_key(lead.id), proposal.provider_id, "opportunity_closed"):
        provider = db.get(User, proposal.provider_id)
        notify_in_app(
            db, proposal.provider_id,
            type="proposal_withdrawn",
            title="Anfrage geschlossen",
            message=f"Die Anfrage \"{lead.title}\" ist nicht mehr verfügbar. Ihre Offerte wurde zurückgezogen.",
            related_id=proposal.id,
            metadata={"lead_id": lead.id},
        )
        if provider:
            subject, html_body = email_templates.opportunity_closed(provider.display_name, lead)
            queue_email(db, provider.email, subject, html_body)
    logger.info(f"Proposal withdrawn: proposal_id={proposal.id}, lead_id={lead.id}")
    return True


def batch_decide(
    db: Session,
    settings: Settings,
    proposal_ids: Iterable[int],
    action: str,
    owner_id: int,
) -> Dict:
    """
    Accept or reject a list of proposals, each independently.

    The one-accepted-per-lead rule still applies per lead, so accepting two
    proposals of the same lead yields one success and one conflict.

    Returns:
        {"processed", "succeeded", "failed", "errors": {proposal_id: code}}
    """
    if action not in BATCH_ACTIONS:
        raise ValidationError(f"Unbekannte Aktion: {action}")

    summary = {"processed": 0, "succeeded": 0, "failed": 0, "errors": {}}
    for proposal_id in dict.fromkeys(proposal_ids):
        summary["processed"] += 1
        try:
            if action == "accept":
                accept_proposal(db, settings, proposal_id, owner_id)
            else:
                reject_proposal(db, proposal_id, owner_id)
            summary["succeeded"] += 1
        except MarketplaceError as e:
            db.rollback()
            summary["failed"] += 1
            summary["errors"][proposal_id] = e.code
            logger.info(f"Batch {action} skipped proposal_id={proposal_id}: {e.code}")
        except Exception as e:
            db.rollback()
            summary["failed"] += 1
            summary["errors"][proposal_id] = "internal_error"
            logger.error(f"Batch {action} failed for proposal_id={proposal_id}: {e}", exc_info=True)

    logger.info(
        f"Batch {action} by owner_id={owner_id}: {summary['succeeded']}/{summary['processed']} succeeded"
    )
    return summary


def submit_proposal(
    db: Session,
    settings: Settings,
    lead_id: int,
    provider_id: int,
    price_min: int,
    price_max: int,
    message: str,
    estimated_duration_days: Optional[int] = None,
) -> Proposal:
    """
    Submit a provider's bid on an active lead.

    Consumes one unit of the provider's proposal quota in the same
    transaction as the insert.

    Raises:
        NotFoundError: lead unknown
        AuthError (403): provider not approved
        ValidationError: lead not open, bad prices
        ConflictError: provider already proposed on this lead
        QuotaExceededError: free-tier quota used up
    """
    lead = db.get(Lead, lead_id)
    if lead is None:
        raise NotFoundError("Anfrage nicht gefunden.")
    profile = db.query(ProviderProfile).filter(ProviderProfile.user_id == provider_id).first()
    if profile is None or profile.verification_status != "approved":
        raise AuthError("forbidden", "Nur verifizierte Handwerker können Offerten einreichen.", status_code=403)
    if lead.status != "active" or lead.proposal_deadline is None or lead.proposal_deadline <= utcnow():
        raise ValidationError("Diese Anfrage nimmt keine Offerten mehr entgegen.")
    if price_min < 0 or price_max < price_min:
        raise ValidationError("Ungültige Preisspanne.")

    existing = db.query(Proposal.id).filter(
        Proposal.lead_id == lead_id, Proposal.provider_id == provider_id
    ).first()
    if existing:
        raise ConflictError("Sie haben bereits eine Offerte für diese Anfrage eingereicht.")

    try:
        consume_proposal_quota(db, provider_id)
    except QuotaExceededError:
        db.rollback()
        raise

    proposal = Proposal(
        lead_id=lead_id,
        provider_id=provider_id,
        price_min=price_min,
        price_max=price_max,
        message=message or "",
        estimated_duration_days=estimated_duration_days,
    )
    db.add(proposal)
    try:
        db.flush()
    except IntegrityError:
        db.rollback()
        raise ConflictError("Sie haben bereits eine Offerte für diese Anfrage eingereicht.")

    notify_in_app(
        db, lead.owner_id,
        type="proposal_received",
        title="Neue Offerte",
        message=f"Sie haben eine neue Offerte für \"{lead.title}\" erhalten.",
        related_id=proposal.id,
        metadata={"lead_id": lead.id},
    )
    owner = db.get(User, lead.owner_id)
    if owner:
        issued = issue_token(
            db, settings,
            user_id=owner.id,
            resource_type="proposal",
            resource_id=proposal.id,
            ttl_days=settings.lead_token_ttl_days,
        )
        subject, html_body = email_templates.proposal_received(owner.display_name, lead, issued.deep_link)
        queue_email(db, owner.email, subject, html_body)

    db.commit()
    db.refresh(proposal)
    logger.info(f"Proposal submitted: proposal_id={proposal.id}, lead_id={lead_id}, provider_id={provider_id}")
    return proposal


def record_lead_view(db: Session, lead_id: int, viewer_id: int) -> bool:
    """Remember that a provider opened a lead. Returns False if already recorded."""
    if db.get(Lead, lead_id) is None:
        raise NotFoundError("Anfrage nicht gefunden.")
    exists = db.query(LeadView.id).filter(LeadView.lead_id == lead_id, LeadView.viewer_id == viewer_id).first()
    if exists:
        return False
    db.add(LeadView(lead_id=lead_id, viewer_id=viewer_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def get_contact_details(db: Session, lead_id: int, viewer_id: int) -> Dict:
    """
    Contact details of the other party, visible only after acceptance.

    The owner sees the accepted provider; the accepted provider sees the
    owner. Everyone else gets AuthError (403).
    """
    lead = db.get(Lead, lead_id)
    if lead is None:
        raise NotFoundError("Anfrage nicht gefunden.")
    if lead.accepted_proposal_id is None:
        raise AuthError("forbidden", "Kontaktdaten sind erst nach Annahme einer Offerte sichtbar.", status_code=403)

    accepted = db.get(Proposal, lead.accepted_proposal_id)
    if viewer_id == lead.owner_id:
        other_id = accepted.provider_id
    elif viewer_id == accepted.provider_id:
        other_id = lead.owner_id
    else:
        raise AuthError("forbidden", status_code=403)

    other = db.get(User, other_id)
    return {
        "user_id": other.id,
        "name": other.display_name,
        "email": other.email,
        "phone": other.phone,
    }


def run_rating_reminders(db: Session, settings: Settings, now=None) -> Dict[str, int]:
    """
    Ask owners to rate the provider a week after accepting their proposal.

    Covers proposals accepted between rating_reminder_after_days and
    rating_reminder_after_days + rating_reminder_window_days ago, so a missed
    daily run is caught up. The owner gets a `rating` token link; one
    reminder per lead.

    Returns:
        Counts: reminded, errors
    """
    now = now or utcnow()
    newest = now - timedelta(days=settings.rating_reminder_after_days)
    oldest = newest - timedelta(days=settings.rating_reminder_window_days)
    summary = {"reminded": 0, "errors": 0}

    proposals = (
        db.query(Proposal)
        .filter(
            Proposal.status == "accepted",
            Proposal.decided_at.isnot(None),
            Proposal.decided_at <= newest,
            Proposal.decided_at > oldest,
        )
        .order_by(Proposal.decided_at, Proposal.id)
        .all()
    )

    for proposal in proposals:
        try:
            with db.begin_nested():
                lead = db.get(Lead, proposal.lead_id)
                owner = db.get(User, lead.owner_id) if lead else None
                if owner is None:
                    continue
                if not claim_receipt(db, lead_key(lead.id), owner.id, "rating_reminder"):
                    continue

                provider = db.get(User, proposal.provider_id)
                profile = db.query(ProviderProfile).filter(ProviderProfile.user_id == proposal.provider_id).first()
                provider_name = (profile.company_name if profile else None) or (
                    provider.display_name if provider else "Ihren Handwerker"
                )

                issued = issue_token(
                    db, settings,
                    user_id=owner.id,
                    resource_type="rating",
                    resource_id=lead.id,
                    ttl_days=settings.rating_token_ttl_days,
                    metadata={"lead_id": lead.id, "provider_id": proposal.provider_id, "proposal_id": proposal.id},
                )
                notify_in_app(
                    db, owner.id,
                    type="rating_reminder",
                    title="Bewerten Sie Ihren Handwerker",
                    message=f"Wie zufrieden waren Sie mit {provider_name} für \"{lead.title}\"?",
                    related_id=lead.id,
                    metadata={"proposal_id": proposal.id},
                )
                subject, html_body = email_templates.rating_reminder(owner.display_name, lead, provider_name, issued.deep_link)
                queue_email(db, owner.email, subject, html_body)
                summary["reminded"] += 1
        except Exception as e:
            summary["errors"] += 1
            logger.error(f"Rating reminder failed for proposal_id={proposal.id}: {e}", exc_info=True)

    db.commit()
    logger.info(f"Rating reminders complete: {summary}")
    return summary

"""
Subscription service: proposal quota, checkout, plan activation and the
daily expiry sweep.

Plan prices and periods come from leadmarket.core.plans.
"""
import logging
from datetime import timedelta
from typing import Dict, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from leadmarket.core.config import Settings
from leadmarket.core.errors import NotFoundError, QuotaExceededError, ValidationError
from leadmarket.core.plans import (
    FREE_PERIOD_DAYS,
    FREE_PLAN,
    FREE_TIER_PROPOSALS_LIMIT,
    UNLIMITED,
    get_plan_config,
)
from leadmarket.core.timeutils import add_months, utcnow
from leadmarket.db.models.provider_profile import ProviderProfile
from leadmarket.db.models.subscription import Subscription
from leadmarket.db.models.user import User
from leadmarket.services import email_templates
from leadmarket.services.notification_service import (
    claim_receipt,
    notify_in_app,
    pending_plan_key,
    queue_email,
    subscription_key,
)

logger = logging.getLogger(__name__)


def get_or_create_subscription(db: Session, user_id: int) -> Subscription:
    """
    Get the user's subscription row, creating a free one if none exists.

    Args:
        db: Database session
        user_id: User ID

    Returns:
        Subscription (flushed, not committed)
    """
    subscription = db.query(Subscription).filter(Subscription.user_id == user_id).first()
    if subscription:
        return subscription

    now = utcnow()
    subscription = Subscription(
        user_id=user_id,
        plan_type=FREE_PLAN,
        status="active",
        proposals_limit=FREE_TIER_PROPOSALS_LIMIT,
        proposals_used_this_period=0,
        current_period_start=now,
        current_period_end=now + timedelta(days=FREE_PERIOD_DAYS),
    )
    db.add(subscription)
    db.flush()
    logger.info(f"Created free subscription for user_id={user_id}")
    return subscription


def _roll_free_period(db: Session, subscription: Subscription, now) -> None:
    """Start a new free period (usage reset) once the old one has ended."""
    if subscription.plan_type != FREE_PLAN:
        return
    if subscription.current_period_end and subscription.current_period_end > now:
        return
    subscription.proposals_used_this_period = 0
    subscription.current_period_start = now
    subscription.current_period_end = now + timedelta(days=FREE_PERIOD_DAYS)
    db.flush()
    logger.info(f"Free period rolled over for user_id={subscription.user_id}")


def consume_proposal_quota(db: Session, user_id: int) -> Tuple[int, Optional[int]]:
    """
    Consume one proposal from the user's quota.

    The check and the increment are one conditional UPDATE, so concurrent
    submissions cannot overshoot the limit. Does not commit.

    Returns:
        (used, limit); limit is None for unlimited plans

    Raises:
        QuotaExceededError: limit reached for the current period
    """
    subscription = get_or_create_subscription(db, user_id)
    _roll_free_period(db, subscription, utcnow())

    result = db.execute(
        update(Subscription)
        .where(
            Subscription.id == subscription.id,
            or_(
                Subscription.proposals_limit == UNLIMITED,
                Subscription.proposals_used_this_period < Subscription.proposals_limit,
            ),
        )
        .values(proposals_used_this_period=Subscription.proposals_used_this_period + 1)
        .execution_options(synchronize_session=False)
    )
    db.expire(subscription)

    if result.rowcount == 0:
        logger.info(
            f"Proposal quota exceeded: user_id={user_id}, "
            f"used={subscription.proposals_used_this_period}, limit={subscription.proposals_limit}"
        )
        raise QuotaExceededError()

    limit = None if subscription.proposals_limit == UNLIMITED else subscription.proposals_limit
    logger.info(
        f"Proposal quota consumed: user_id={user_id}, used={subscription.proposals_used_this_period}, "
        f"limit={limit}, plan={subscription.plan_type}"
    )
    return subscription.proposals_used_this_period, limit


def build_reference(user_id: int, plan_type: str, timestamp: int) -> str:
    return f"{user_id}-{plan_type}-{timestamp}"


def start_checkout(db: Session, user_id: int, plan_type: str) -> Dict:
    """
    Record the plan the user selected and return what the gateway needs.

    The plan only becomes active once the payment webhook confirms it.

    Returns:
        {"reference_id", "plan_type", "amount", "currency"}
    """
    config = get_plan_config(plan_type)
    if config is None:
        raise ValidationError(f"Unbekannter Plan: {plan_type}")
    if db.get(User, user_id) is None:
        raise NotFoundError("Benutzer nicht gefunden.")

    subscription = get_or_create_subscription(db, user_id)
    now = utcnow()
    subscription.pending_plan = config.plan_type
    subscription.pending_plan_at = now
    reference_id = build_reference(user_id, config.plan_type, int(now.timestamp() * 1000))
    db.commit()

    logger.info(f"Checkout started: user_id={user_id}, plan={config.plan_type}, reference={reference_id}")
    return {
        "reference_id": reference_id,
        "plan_type": config.plan_type,
        "amount": config.amount,
        "currency": config.currency,
    }


def activate_plan(db: Session, user_id: int, plan_type: str, now=None) -> Subscription:
    """
    Put the user on a paid plan starting now. Does not commit.

    Raises:
        ValidationError: plan_type is not a paid plan
    """
    config = get_plan_config(plan_type)
    if config is None:
        raise ValidationError(f"Unbekannter Plan: {plan_type}")
    now = now or utcnow()

    subscription = get_or_create_subscription(db, user_id)
    subscription.plan_type = config.plan_type
    subscription.status = "active"
    subscription.proposals_limit = config.proposals_limit
    subscription.proposals_used_this_period = 0
    subscription.current_period_start = now
    subscription.current_period_end = add_months(now, config.period_months)
    subscription.pending_plan = None
    db.flush()

    logger.info(
        f"Plan activated: user_id={user_id}, plan={config.plan_type}, "
        f"period_end={subscription.current_period_end.isoformat()}"
    )
    return subscription


def downgrade_to_free(subscription: Subscription, now) -> None:
    subscription.plan_type = FREE_PLAN
    subscription.status = "active"
    subscription.proposals_limit = FREE_TIER_PROPOSALS_LIMIT
    subscription.proposals_used_this_period = 0
    subscription.current_period_start = now
    subscription.current_period_end = now + timedelta(days=FREE_PERIOD_DAYS)
    subscription.pending_plan = None


def revert_to_free_if_no_active_plan(db: Session, user_id: int, now=None) -> bool:
    """
    Revert to free after a failed payment, unless a paid plan is still running.

    A stale decline for an old checkout must not cancel a plan the user has
    already paid for. Does not commit.

    Returns:
        True if the subscription was reverted
    """
    now = now or utcnow()
    subscription = get_or_create_subscription(db, user_id)
    if subscription.has_active_paid_plan(now):
        subscription.pending_plan = None
        logger.info(
            f"Failed payment ignored for user_id={user_id}: active {subscription.plan_type} plan "
            f"until {subscription.current_period_end}"
        )
        return False
    if subscription.plan_type == FREE_PLAN:
        subscription.pending_plan = None
        return False

    downgrade_to_free(subscription, now)
    db.flush()
    logger.info(f"Subscription reverted to free for user_id={user_id}")
    return True


def run_subscription_expiry_sweep(db: Session, settings: Settings, now=None) -> Dict[str, int]:
    """
    Daily sweep over paid subscriptions.

    - period ended: downgrade to free and notify
    - ending within subscription_warning_days: send one warning per period

    Each subscription runs in its own savepoint.

    Returns:
        Counts: downgraded, warned, errors
    """
    now = now or utcnow()
    warn_until = now + timedelta(days=settings.subscription_warning_days)
    summary = {"downgraded": 0, "warned": 0, "errors": 0}
    renew_link = f"{settings.frontend_url}/checkout"

    subscriptions = (
        db.query(Subscription)
        .filter(
            Subscription.plan_type != FREE_PLAN,
            Subscription.status == "active",
            Subscription.current_period_end.isnot(None),
            Subscription.current_period_end <= warn_until,
        )
        .order_by(Subscription.id)
        .all()
    )

    for subscription in subscriptions:
        try:
            with db.begin_nested():
                user = db.get(User, subscription.user_id)
                plan_type = subscription.plan_type
                period_end = subscription.current_period_end

                if period_end <= now:
                    downgrade_to_free(subscription, now)
                    notify_in_app(
                        db, subscription.user_id,
                        type="subscription_expired",
                        title="Abonnement abgelaufen",
                        message="Ihr Abonnement ist abgelaufen. Sie wurden auf den kostenlosen Plan umgestellt.",
                        metadata={"previous_plan": plan_type},
                    )
                    if user:
                        subject, html_body = email_templates.subscription_expired(user.display_name, plan_type, renew_link)
                        queue_email(db, user.email, subject, html_body)
                    summary["downgraded"] += 1
                    logger.info(f"Subscription expired: user_id={subscription.user_id}, plan={plan_type}")
                elif claim_receipt(db, subscription_key(subscription.id, period_end), subscription.user_id, "subscription_expiring"):
                    notify_in_app(
                        db, subscription.user_id,
                        type="subscription_expiring",
                        title="Abonnement läuft bald ab",
                        message=f"Ihr Abonnement läuft am {period_end:%d.%m.%Y} ab.",
                        metadata={"plan": plan_type, "period_end": period_end.isoformat()},
                    )
                    if user:
                        subject, html_body = email_templates.subscription_expiring(
                            user.display_name, plan_type, period_end, renew_link
                        )
                        queue_email(db, user.email, subject, html_body)
                    summary["warned"] += 1
        except Exception as e:
            summary["errors"] += 1
            logger.error(f"Subscription sweep failed for subscription_id={subscription.id}: {e}", exc_info=True)

    db.commit()
    logger.info(f"Subscription expiry sweep complete: {summary}")
    return summary


def run_pending_payment_reminders(db: Session, settings: Settings, now=None) -> Dict[str, int]:
    """
    Remind approved providers who chose a paid plan but have not paid.

    Still on free with a pending_plan:
    - payment_reminder_first_hours after checkout: first reminder
    - payment_reminder_final_hours after checkout, first already sent: final reminder

    A new checkout starts a new reminder cycle. Each subscription runs in its
    own savepoint.

    Returns:
        Counts: first_sent, final_sent, errors
    """
    now = now or utcnow()
    first_cutoff = now - timedelta(hours=settings.payment_reminder_first_hours)
    final_cutoff = now - timedelta(hours=settings.payment_reminder_final_hours)
    summary = {"first_sent": 0, "final_sent": 0, "errors": 0}

    subscriptions = (
        db.query(Subscription)
        .join(ProviderProfile, ProviderProfile.user_id == Subscription.user_id)
        .filter(
            Subscription.plan_type == FREE_PLAN,
            Subscription.pending_plan.isnot(None),
            Subscription.pending_plan_at.isnot(None),
            Subscription.pending_plan_at <= first_cutoff,
            ProviderProfile.verification_status == "approved",
        )
        .order_by(Subscription.id)
        .all()
    )

    for subscription in subscriptions:
        try:
            with db.begin_nested():
                user = db.get(User, subscription.user_id)
                if not user or not user.email:
                    continue
                key = pending_plan_key(subscription.id, subscription.pending_plan_at)
                link = f"{settings.frontend_url}/checkout?plan={subscription.pending_plan}"

                if claim_receipt(db, key, user.id, "payment_reminder_1"):
                    subject, html_body = email_templates.payment_reminder(
                        user.display_name, subscription.pending_plan, link
                    )
                    queue_email(db, user.email, subject, html_body)
                    summary["first_sent"] += 1
                elif subscription.pending_plan_at <= final_cutoff and claim_receipt(
                    db, key, user.id, "payment_reminder_2"
                ):
                    subject, html_body = email_templates.payment_reminder(
                        user.display_name, subscription.pending_plan, link, final=True
                    )
                    queue_email(db, user.email, subject, html_body)
                    summary["final_sent"] += 1
        except Exception as e:
            summary["errors"] += 1
            logger.error(f"Payment reminder failed for subscription_id={subscription.id}: {e}", exc_info=True)

    db.commit()
    logger.info(f"Pending payment reminders complete: {summary}")
    return summary

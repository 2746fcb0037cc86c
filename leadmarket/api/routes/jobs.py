"""
Scheduler-triggered jobs (daily cron + outbox drain).

All endpoints require the X-Cron-Key header.
"""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leadmarket.core.auth_dependency import get_app_settings, get_db, get_email_client, require_cron_key
from leadmarket.core.config import Settings
from leadmarket.schemas.jobs import (
    ExpiryPassResult,
    OutboxResult,
    PaymentReminderResult,
    RatingReminderResult,
    ReminderPassResult,
    SubscriptionSweepResult,
)
from leadmarket.services.email_service import EmailClient
from leadmarket.services.expiry_service import run_expiry_pass, run_reminder_pass
from leadmarket.services.outbox_worker import deliver_pending
from leadmarket.services.proposal_service import run_rating_reminders
from leadmarket.services.subscription_service import run_pending_payment_reminders, run_subscription_expiry_sweep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["Jobs"], dependencies=[Depends(require_cron_key)])


@router.post("/lead-expiry", response_model=ExpiryPassResult)
def lead_expiry(db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    return run_expiry_pass(db, settings)


@router.post("/deadline-reminders", response_model=ReminderPassResult)
def deadline_reminders(db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    return run_reminder_pass(db, settings)


@router.post("/subscription-expiry", response_model=SubscriptionSweepResult)
def subscription_expiry(db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    return run_subscription_expiry_sweep(db, settings)


@router.post("/payment-reminders", response_model=PaymentReminderResult)
def payment_reminders(db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    """Remind providers whose chosen paid plan is still unpaid."""
    return run_pending_payment_reminders(db, settings)


@router.post("/rating-reminders", response_model=RatingReminderResult)
def rating_reminders(db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    return run_rating_reminders(db, settings)


@router.post("/outbox", response_model=OutboxResult)
def outbox(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    client: EmailClient = Depends(get_email_client),
):
    """Deliver pending outbox emails left over from request-time drains."""
    return deliver_pending(db, client, settings)

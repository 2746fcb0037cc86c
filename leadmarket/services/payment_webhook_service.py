"""
Payrexx webhook processing.

Order of operations:
1. Verify the HMAC signature over the raw body (403 before any parsing)
2. Parse the form-encoded body and its JSON `transaction` field (400)
3. Idempotency gate on the gateway transaction id
4. Dispatch on transaction status

The gateway retries anything that is not 2xx, so every handled branch
acknowledges, and only signature/validation problems or unexpected
failures do not.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leadmarket.core.config import Settings
from leadmarket.core.errors import ValidationError
from leadmarket.core.plans import DEFAULT_CURRENCY, get_plan_config
from leadmarket.core.security import verify_webhook_signature
from leadmarket.core.timeutils import utcnow
from leadmarket.db.models.payment_record import PaymentRecord
from leadmarket.db.models.user import User
from leadmarket.services import email_templates
from leadmarket.services.alert_service import raise_alert
from leadmarket.services.notification_service import notify_in_app, queue_email
from leadmarket.services.subscription_service import activate_plan, revert_to_free_if_no_active_plan

logger = logging.getLogger(__name__)

FAILED_STATUSES = ("declined", "failed", "cancelled")


@dataclass(frozen=True)
class Reference:
    user_id: int
    plan_type: str
    timestamp: str


@dataclass(frozen=True)
class Transaction:
    transaction_id: str
    status: str
    reference: Reference
    amount: Optional[int]
    currency: Optional[str]
    raw: Dict[str, Any]


def parse_reference(reference_id: Optional[str]) -> Reference:
    """
    Parse `{userId}-{planType}-{timestamp}`, splitting from the right.

    Raises:
        ValidationError: malformed reference
    """
    parts = (reference_id or "").rsplit("-", 2)
    if len(parts) != 3 or not all(parts):
        raise ValidationError(f"Ungültige Referenz: {reference_id!r}")
    user_part, plan_type, timestamp = parts
    try:
        user_id = int(user_part)
    except ValueError:
        raise ValidationError(f"Ungültige Referenz: {reference_id!r}")
    return Reference(user_id=user_id, plan_type=plan_type, timestamp=timestamp)


def parse_transaction(raw_body: bytes) -> Transaction:
    """
    Extract the transaction from a form-encoded webhook body.

    Raises:
        ValidationError: missing/malformed transaction JSON or reference
    """
    try:
        form = parse_qs(raw_body.decode("utf-8"), keep_blank_values=True)
    except UnicodeDecodeError:
        raise ValidationError("Ungültiger Webhook-Inhalt.")

    values = form.get("transaction")
    if not values:
        raise ValidationError("Keine Transaktionsdaten.")
    try:
        data = json.loads(values[0])
    except json.JSONDecodeError:
        raise ValidationError("Ungültige Transaktionsdaten.")
    if not isinstance(data, dict) or data.get("id") in (None, ""):
        raise ValidationError("Ungültige Transaktionsdaten.")

    amount = data.get("amount")
    if amount is not None:
        try:
            amount = int(amount)
        except (TypeError, ValueError):
            raise ValidationError("Ungültiger Betrag.")

    return Transaction(
        transaction_id=str(data["id"]),
        status=str(data.get("status") or "").lower(),
        reference=parse_reference(data.get("referenceId")),
        amount=amount,
        currency=str(data["currency"]).upper() if data.get("currency") else None,
        raw=data,
    )


def _already_processed(db: Session, transaction_id: str) -> bool:
    return db.query(PaymentRecord.id).filter(PaymentRecord.transaction_id == transaction_id).first() is not None


def _record_payment(db: Session, tx: Transaction, status: str) -> bool:
    """Insert the idempotency record. Returns False on a concurrent duplicate."""
    try:
        with db.begin_nested():
            db.add(PaymentRecord(
                user_id=tx.reference.user_id,
                transaction_id=tx.transaction_id,
                plan_type=tx.reference.plan_type,
                amount=tx.amount or 0,
                currency=tx.currency or DEFAULT_CURRENCY,
                status=status,
            ))
    except IntegrityError:
        return False
    return True


def _handle_confirmed(db: Session, settings: Settings, tx: Transaction) -> Dict[str, Any]:
    config = get_plan_config(tx.reference.plan_type)
    if tx.amount != config.amount or tx.currency != config.currency:
        logger.warning(
            f"Payrexx amount mismatch: transaction={tx.transaction_id}, plan={config.plan_type}, "
            f"got={tx.amount} {tx.currency}, expected={config.amount} {config.currency}"
        )
        raise ValidationError("Betrag stimmt nicht mit dem Plan überein.")

    if not _record_payment(db, tx, "paid"):
        db.rollback()
        return {"received": True, "already_processed": True}

    subscription = activate_plan(db, tx.reference.user_id, config.plan_type, now=utcnow())
    notify_in_app(
        db, tx.reference.user_id,
        type="subscription_activated",
        title="Abonnement aktiviert",
        message=f"Ihr {config.display_name} Abonnement wurde erfolgreich aktiviert.",
        metadata={"plan_type": config.plan_type, "transaction_id": tx.transaction_id},
    )
    user = db.get(User, tx.reference.user_id)
    if user:
        subject, html_body = email_templates.subscription_confirmed(
            user.display_name, config.plan_type, subscription.current_period_end
        )
        queue_email(db, user.email, subject, html_body)

    db.commit()
    logger.info(
        f"Payrexx payment confirmed: transaction={tx.transaction_id}, user_id={tx.reference.user_id}, "
        f"plan={config.plan_type}"
    )
    return {"received": True}


def _handle_failed(db: Session, settings: Settings, tx: Transaction) -> Dict[str, Any]:
    if not _record_payment(db, tx, "failed"):
        db.rollback()
        return {"received": True, "already_processed": True}

    reverted = revert_to_free_if_no_active_plan(db, tx.reference.user_id)
    notify_in_app(
        db, tx.reference.user_id,
        type="payment_failed",
        title="Zahlung fehlgeschlagen",
        message="Ihre Zahlung konnte nicht verarbeitet werden. Bitte versuchen Sie es erneut.",
        metadata={"plan_type": tx.reference.plan_type, "transaction_id": tx.transaction_id, "status": tx.status},
    )
    user = db.get(User, tx.reference.user_id)
    if user:
        subject, html_body = email_templates.payment_failed(
            user.display_name, tx.reference.plan_type, f"{settings.frontend_url}/checkout"
        )
        queue_email(db, user.email, subject, html_body)
    raise_alert(
        db,
        type="payment_failed",
        title="Zahlung fehlgeschlagen",
        message=f"Payrexx Zahlung für Benutzer {tx.reference.user_id} fehlgeschlagen. Status: {tx.status}",
        metadata={
            "user_id": tx.reference.user_id,
            "plan_type": tx.reference.plan_type,
            "transaction_id": tx.transaction_id,
            "status": tx.status,
            "reverted": reverted,
        },
    )

    db.commit()
    logger.info(
        f"Payrexx payment {tx.status}: transaction={tx.transaction_id}, user_id={tx.reference.user_id}, "
        f"reverted_to_free={reverted}"
    )
    return {"received": True}


def process_payrexx_webhook(
    db: Session,
    settings: Settings,
    raw_body: bytes,
    signature: Optional[str],
) -> Dict[str, Any]:
    """
    Authenticate and apply one Payrexx webhook call.

    Args:
        db: Database session
        settings: Application settings (webhook secret)
        raw_body: Exact request body as received
        signature: Value of the signature header, if any

    Returns:
        Acknowledgement body, e.g. {"received": True} or
        {"received": True, "already_processed": True}

    Raises:
        AuthError (403): missing or invalid signature
        ValidationError (400): malformed body, unknown plan, amount mismatch
    """
    verify_webhook_signature(settings.payrexx_webhook_secret, raw_body, signature)
    tx = parse_transaction(raw_body)

    logger.info(
        f"Payrexx webhook received: transaction={tx.transaction_id}, status={tx.status}, "
        f"user_id={tx.reference.user_id}, plan={tx.reference.plan_type}"
    )

    if get_plan_config(tx.reference.plan_type) is None:
        raise ValidationError(f"Unbekannter Plan: {tx.reference.plan_type}")
    if db.get(User, tx.reference.user_id) is None:
        raise ValidationError(f"Unbekannter Benutzer in Referenz: {tx.reference.user_id}")

    if tx.status == "waiting":
        return {"received": True}
    if tx.status not in FAILED_STATUSES and tx.status != "confirmed":
        logger.warning(f"Payrexx webhook with unhandled status {tx.status!r}: transaction={tx.transaction_id}")
        return {"received": True}

    if _already_processed(db, tx.transaction_id):
        logger.info(f"Payrexx webhook replay ignored: transaction={tx.transaction_id}")
        return {"received": True, "already_processed": True}

    if tx.status == "confirmed":
        return _handle_confirmed(db, settings, tx)
    return _handle_failed(db, settings, tx)

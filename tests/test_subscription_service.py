"""
Tests for proposal quota, checkout and the subscription expiry sweep.
"""
from datetime import timedelta

import pytest

from leadmarket.core.errors import QuotaExceededError, ValidationError
from leadmarket.core.timeutils import add_months, utcnow
from leadmarket.db.models.notification import Notification
from leadmarket.db.models.notification_receipt import NotificationReceipt
from leadmarket.db.models.outbox_event import OutboxEvent
from leadmarket.db.models.subscription import Subscription
from leadmarket.services.subscription_service import (
    activate_plan,
    consume_proposal_quota,
    get_or_create_subscription,
    run_pending_payment_reminders,
    run_subscription_expiry_sweep,
    start_checkout,
)

from factories import make_provider, make_user


@pytest.fixture
def provider(db):
    return make_user(db, "profi@example.ch", role="provider", full_name="Profi GmbH")


def paid_subscription(db, user, plan_type="monthly", ends_in=timedelta(days=20)):
    now = utcnow()
    sub = Subscription(
        user_id=user.id, plan_type=plan_type, status="active",
        proposals_limit=-1, proposals_used_this_period=12,
        current_period_start=now - timedelta(days=10),
        current_period_end=now + ends_in,
    )
    db.add(sub)
    db.commit()
    return sub


def test_new_user_gets_free_subscription(db, provider):
    sub = get_or_create_subscription(db, provider.id)

    assert sub.plan_type == "free"
    assert sub.proposals_limit == 5
    assert sub.proposals_used_this_period == 0


def test_free_quota_enforced(db, provider):
    for expected in range(1, 6):
        used, limit = consume_proposal_quota(db, provider.id)
        assert (used, limit) == (expected, 5)

    with pytest.raises(QuotaExceededError):
        consume_proposal_quota(db, provider.id)


def test_free_period_rollover_resets_usage(db, provider):
    now = utcnow()
    db.add(Subscription(
        user_id=provider.id, plan_type="free", status="active",
        proposals_limit=5, proposals_used_this_period=5,
        current_period_start=now - timedelta(days=40),
        current_period_end=now - timedelta(days=10),
    ))
    db.commit()

    used, limit = consume_proposal_quota(db, provider.id)

    assert (used, limit) == (1, 5)


def test_paid_plan_is_unlimited(db, provider):
    paid_subscription(db, provider)

    used, limit = consume_proposal_quota(db, provider.id)

    assert used == 13
    assert limit is None


def test_activate_plan_uses_calendar_months(db, provider):
    start = utcnow().replace(month=1, day=31, hour=12)

    sub = activate_plan(db, provider.id, "monthly", now=start)

    assert sub.current_period_end == add_months(start, 1)
    assert sub.current_period_end.month == 2


def test_start_checkout_rejects_unknown_plan(db, provider):
    with pytest.raises(ValidationError):
        start_checkout(db, provider.id, "lifetime")


def test_start_checkout_reference_format(db, provider):
    result = start_checkout(db, provider.id, "annual")

    user_part, plan_type, timestamp = result["reference_id"].rsplit("-", 2)
    assert user_part == str(provider.id)
    assert plan_type == "annual"
    assert timestamp.isdigit()
    assert result["amount"] == 96000


def test_sweep_downgrades_expired_plan(db, settings, provider):
    paid_subscription(db, provider, ends_in=timedelta(hours=-1))

    summary = run_subscription_expiry_sweep(db, settings)

    assert summary == {"downgraded": 1, "warned": 0, "errors": 0}
    db.expire_all()
    sub = db.query(Subscription).one()
    assert sub.plan_type == "free"
    assert sub.proposals_limit == 5
    assert sub.proposals_used_this_period == 0
    assert db.query(Notification).filter(Notification.type == "subscription_expired").count() == 1
    assert db.query(OutboxEvent).count() == 1


def test_sweep_warns_once_per_period(db, settings, provider):
    paid_subscription(db, provider, ends_in=timedelta(days=3))

    first = run_subscription_expiry_sweep(db, settings)
    second = run_subscription_expiry_sweep(db, settings)

    assert first["warned"] == 1
    assert second["warned"] == 0
    assert db.query(NotificationReceipt).filter(NotificationReceipt.kind == "subscription_expiring").count() == 1
    assert db.query(OutboxEvent).count() == 1


def test_sweep_ignores_plans_far_from_expiry(db, settings, provider):
    paid_subscription(db, provider, ends_in=timedelta(days=60))

    summary = run_subscription_expiry_sweep(db, settings)

    assert summary == {"downgraded": 0, "warned": 0, "errors": 0}


def test_subscription_job_endpoint(client, db, settings, provider):
    paid_subscription(db, provider, ends_in=timedelta(hours=-1))

    response = client.post("/jobs/subscription-expiry", headers={"X-Cron-Key": "cron-secret"})

    assert response.status_code == 200
    assert response.json()["downgraded"] == 1


def pending_checkout(db, user, hours_ago, plan="annual"):
    sub = get_or_create_subscription(db, user.id)
    sub.pending_plan = plan
    sub.pending_plan_at = utcnow() - timedelta(hours=hours_ago)
    db.commit()
    return sub


@pytest.fixture
def approved_provider(db):
    return make_provider(db, "wartet@example.ch", ["maler"], ["BE"], company_name="Farbe GmbH")


def test_start_checkout_records_pending_since(db, provider):
    before = utcnow()
    start_checkout(db, provider.id, "monthly")

    sub = db.query(Subscription).one()
    assert sub.pending_plan == "monthly"
    assert sub.pending_plan_at >= before


def test_payment_reminders_first_then_final(db, settings, approved_provider):
    sub = pending_checkout(db, approved_provider, hours_ago=0)
    chosen_at = sub.pending_plan_at

    def run_at(hours):
        return run_pending_payment_reminders(db, settings, now=chosen_at + timedelta(hours=hours))

    assert run_at(50) == {"first_sent": 1, "final_sent": 0, "errors": 0}
    assert run_at(60) == {"first_sent": 0, "final_sent": 0, "errors": 0}
    assert run_at(170) == {"first_sent": 0, "final_sent": 1, "errors": 0}
    assert run_at(200) == {"first_sent": 0, "final_sent": 0, "errors": 0}

    events = db.query(OutboxEvent).order_by(OutboxEvent.id).all()
    assert len(events) == 2
    assert events[1].subject.startswith("Letzte Erinnerung")
    assert "checkout?plan=annual" in events[0].html_body


def test_new_checkout_restarts_reminders(db, settings, approved_provider):
    pending_checkout(db, approved_provider, hours_ago=50)
    run_pending_payment_reminders(db, settings)

    pending_checkout(db, approved_provider, hours_ago=49, plan="monthly")

    assert run_pending_payment_reminders(db, settings)["first_sent"] == 1


def test_payment_reminder_waits_48_hours(db, settings, approved_provider):
    pending_checkout(db, approved_provider, hours_ago=10)

    assert run_pending_payment_reminders(db, settings)["first_sent"] == 0
    assert db.query(OutboxEvent).count() == 0


def test_payment_reminder_skips_unapproved_and_paid(db, settings, approved_provider):
    unapproved = make_provider(db, "neu@example.ch", ["maler"], ["BE"], verification_status="pending")
    pending_checkout(db, unapproved, hours_ago=60)
    sub = pending_checkout(db, approved_provider, hours_ago=60)
    activate_plan(db, approved_provider.id, "monthly")
    sub.pending_plan = "annual"
    db.commit()

    summary = run_pending_payment_reminders(db, settings)

    assert summary["first_sent"] == 0
    assert db.query(OutboxEvent).count() == 0


def test_payment_reminder_job_endpoint(client, db, settings, approved_provider):
    pending_checkout(db, approved_provider, hours_ago=49)

    response = client.post("/jobs/payment-reminders", headers={"X-Cron-Key": "cron-secret"})

    assert response.status_code == 200
    assert response.json() == {"first_sent": 1, "final_sent": 0, "errors": 0}

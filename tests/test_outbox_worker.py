"""
Tests for the outbox delivery worker.
"""
from datetime import timedelta

import httpx

from leadmarket.core.timeutils import utcnow
from leadmarket.db.models.admin_alert import AdminAlert
from leadmarket.db.models.outbox_event import OutboxEvent
from leadmarket.services.email_service import EmailClient
from leadmarket.services.notification_service import queue_email
from leadmarket.services.outbox_worker import claim_event, deliver_pending


def failing_client(settings, status_code):
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code))
    return EmailClient(settings, http_client=httpx.Client(transport=transport), sleep=lambda seconds: None)


def queue(db, count=1):
    for i in range(count):
        queue_email(db, f"kunde{i}@example.ch", "Neue Offerte", "<p>Offerte</p>")
    db.commit()


def test_delivers_pending_emails(db, settings, email_client, email_requests):
    queue(db, 2)

    summary = deliver_pending(db, email_client, settings)

    assert summary == {"processed": 2, "sent": 2, "failed": 0, "retrying": 0}
    assert len(email_requests) == 2
    events = db.query(OutboxEvent).all()
    assert all(e.status == "sent" and e.sent_at is not None for e in events)

    # Nothing left for a second run
    assert deliver_pending(db, email_client, settings)["processed"] == 0


def test_transient_failure_stays_pending(db, settings):
    queue(db)
    client = failing_client(settings, 503)

    summary = deliver_pending(db, client, settings)

    assert summary["retrying"] == 1
    event = db.query(OutboxEvent).one()
    assert event.status == "pending"
    assert event.attempts == 1
    assert "503" in event.last_error
    assert db.query(AdminAlert).count() == 0


def test_gives_up_after_max_attempts(db, settings):
    settings = settings.with_overrides(outbox_max_attempts=2)
    queue(db)
    client = failing_client(settings, 503)

    deliver_pending(db, client, settings)
    summary = deliver_pending(db, client, settings)

    assert summary["failed"] == 1
    assert db.query(OutboxEvent).one().status == "failed"
    alert = db.query(AdminAlert).one()
    assert alert.type == "email_undeliverable"


def test_permanent_failure_fails_immediately(db, settings):
    queue(db)
    client = failing_client(settings, 422)

    summary = deliver_pending(db, client, settings)

    assert summary["failed"] == 1
    assert db.query(OutboxEvent).one().attempts == 1
    assert db.query(AdminAlert).filter(AdminAlert.type == "email_undeliverable").count() == 1


def test_queue_email_without_recipient_is_skipped(db):
    assert queue_email(db, None, "Betreff", "<p></p>") is None
    db.commit()
    assert db.query(OutboxEvent).count() == 0


def recording_client(settings, label, sends, during_send=None):
    def handler(request):
        sends.append(label)
        if during_send is not None:
            during_send()
        return httpx.Response(200, json={})

    return EmailClient(settings, http_client=httpx.Client(transport=httpx.MockTransport(handler)), sleep=lambda s: None)


def test_overlapping_drains_deliver_each_row_once(db, settings, session_factory):
    queue(db)
    sends = []
    overlapping = {}
    other_session = session_factory()

    def run_second_drain():
        if "summary" not in overlapping:
            overlapping["summary"] = deliver_pending(other_session, recording_client(settings, "second", sends), settings)

    first = deliver_pending(db, recording_client(settings, "first", sends, during_send=run_second_drain), settings)
    other_session.close()

    assert sends == ["first"]
    assert first["sent"] == 1
    assert overlapping["summary"]["processed"] == 0
    db.expire_all()
    event = db.query(OutboxEvent).one()
    assert event.status == "sent"
    assert event.attempts == 1
    assert event.claimed_at is None


def test_claim_event_is_won_once(db, settings, session_factory):
    queue(db)
    event_id = db.query(OutboxEvent).one().id
    other_session = session_factory()

    assert claim_event(db, event_id) is True
    assert claim_event(other_session, event_id) is False
    other_session.close()


def test_stale_claim_is_released_and_delivered(db, settings, email_client, email_requests):
    queue(db)
    event = db.query(OutboxEvent).one()
    event.status = "sending"
    event.claimed_at = utcnow() - timedelta(hours=1)
    event.attempts = 1
    db.commit()

    summary = deliver_pending(db, email_client, settings)

    assert summary["sent"] == 1
    assert len(email_requests) == 1
    db.expire_all()
    assert db.query(OutboxEvent).one().attempts == 2


def test_fresh_claim_is_left_alone(db, settings, email_client, email_requests):
    queue(db)
    event = db.query(OutboxEvent).one()
    event.status = "sending"
    event.claimed_at = utcnow()
    db.commit()

    summary = deliver_pending(db, email_client, settings)

    assert summary["processed"] == 0
    assert email_requests == []

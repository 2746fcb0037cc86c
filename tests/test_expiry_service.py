"""
Tests for the lead expiry scheduler (expiry + reminder passes).
"""
from datetime import timedelta
from unittest.mock import patch

from leadmarket.core.timeutils import utcnow
from leadmarket.db.models.access_token import AccessToken
from leadmarket.db.models.lead import Lead
from leadmarket.db.models.notification import Notification
from leadmarket.db.models.outbox_event import OutboxEvent
from leadmarket.db.models.proposal import Proposal
from leadmarket.services import expiry_service
from leadmarket.services.expiry_service import run_expiry_pass, run_reminder_pass
from leadmarket.services.proposal_service import record_lead_view

from factories import auth_headers, make_lead, make_proposal, make_provider


def test_expiry_pass_expires_lead_and_withdraws_pending(db, settings, owner):
    provider = make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    lead = make_lead(db, owner, deadline=utcnow() - timedelta(hours=1))
    proposal = make_proposal(db, lead, provider)

    summary = run_expiry_pass(db, settings)

    assert summary == {"expired": 1, "proposals_withdrawn": 1, "errors": 0}
    db.expire_all()
    assert db.get(Lead, lead.id).status == "expired"
    assert db.get(Proposal, proposal.id).status == "withdrawn"
    recipients = {n.user_id for n in db.query(Notification).all()}
    assert recipients == {owner.id, provider.id}


def test_expiry_pass_ignores_open_and_decided_leads(db, settings, owner):
    open_lead = make_lead(db, owner, deadline=utcnow() + timedelta(days=2))
    draft = make_lead(db, owner, status="draft")

    summary = run_expiry_pass(db, settings)

    assert summary["expired"] == 0
    db.expire_all()
    assert db.get(Lead, open_lead.id).status == "active"
    assert db.get(Lead, draft.id).status == "draft"


def test_expiry_pass_is_safe_to_rerun(db, settings, owner):
    provider = make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    lead = make_lead(db, owner, deadline=utcnow() - timedelta(hours=1))
    make_proposal(db, lead, provider)

    run_expiry_pass(db, settings)
    emails_after_first = db.query(OutboxEvent).count()
    summary = run_expiry_pass(db, settings)

    assert summary["expired"] == 0
    assert db.query(OutboxEvent).count() == emails_after_first


def test_expiry_failure_on_one_lead_is_isolated(db, settings, owner):
    broken = make_lead(db, owner, deadline=utcnow() - timedelta(hours=2), title="Kaputt")
    healthy = make_lead(db, owner, deadline=utcnow() - timedelta(hours=1), title="Gesund")

    real_withdraw = expiry_service.withdraw_pending_for_lead

    def flaky_withdraw(db_, lead):
        if lead.id == broken.id:
            raise RuntimeError("boom")
        return real_withdraw(db_, lead)

    with patch.object(expiry_service, "withdraw_pending_for_lead", side_effect=flaky_withdraw):
        summary = run_expiry_pass(db, settings)

    assert summary["expired"] == 1
    assert summary["errors"] == 1
    db.expire_all()
    assert db.get(Lead, broken.id).status == "active"
    assert db.get(Lead, healthy.id).status == "expired"


def test_reminder_pass_reminds_owner_with_pending_proposals(db, settings, owner):
    provider = make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    lead = make_lead(db, owner, deadline=utcnow() + timedelta(hours=20))
    make_proposal(db, lead, provider)

    summary = run_reminder_pass(db, settings)

    assert summary["owner_reminders"] == 1
    assert summary["provider_nudges"] == 0
    reminder = db.query(Notification).filter(Notification.user_id == owner.id).one()
    assert reminder.type == "deadline_reminder"


def test_reminder_pass_nudges_viewers_who_did_not_propose(db, settings, owner):
    proposer = make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    viewer = make_provider(db, "v@example.ch", ["elektriker"], ["ZH"])
    lead = make_lead(db, owner, deadline=utcnow() + timedelta(hours=30))
    make_proposal(db, lead, proposer)
    record_lead_view(db, lead.id, proposer.id)
    record_lead_view(db, lead.id, viewer.id)

    summary = run_reminder_pass(db, settings)

    assert summary["provider_nudges"] == 1
    token = db.query(AccessToken).filter(AccessToken.user_id == viewer.id).one()
    assert token.resource_type == "lead"
    assert token.resource_id == lead.id
    assert db.query(AccessToken).filter(AccessToken.user_id == proposer.id).count() == 0


def test_reminder_pass_respects_lookahead_window(db, settings, owner):
    provider = make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    far = make_lead(db, owner, deadline=utcnow() + timedelta(hours=72))
    make_proposal(db, far, provider)

    assert run_reminder_pass(db, settings)["leads"] == 0


def test_reminder_pass_sends_each_reminder_once(db, settings, owner):
    provider = make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    viewer = make_provider(db, "v@example.ch", ["elektriker"], ["ZH"])
    lead = make_lead(db, owner, deadline=utcnow() + timedelta(hours=10))
    make_proposal(db, lead, provider)
    record_lead_view(db, lead.id, viewer.id)

    run_reminder_pass(db, settings)
    summary = run_reminder_pass(db, settings)

    assert summary["owner_reminders"] == 0
    assert summary["provider_nudges"] == 0
    assert db.query(OutboxEvent).count() == 2


def test_job_endpoint_requires_cron_key(client, db, settings, owner):
    assert client.post("/jobs/lead-expiry").status_code == 403
    assert client.post("/jobs/lead-expiry", headers={"X-Cron-Key": "wrong"}).status_code == 403


def test_job_endpoint_runs_expiry_pass(client, db, settings, owner):
    lead = make_lead(db, owner, deadline=utcnow() - timedelta(hours=1))

    response = client.post("/jobs/lead-expiry", headers={"X-Cron-Key": "cron-secret"})

    assert response.status_code == 200
    assert response.json() == {"expired": 1, "proposals_withdrawn": 0, "errors": 0}
    db.expire_all()
    assert db.get(Lead, lead.id).status == "expired"


def test_job_endpoint_rejects_bearer_token_instead_of_cron_key(client, settings, owner):
    response = client.post("/jobs/deadline-reminders", headers=auth_headers(owner, settings))
    assert response.status_code == 403

"""
Tests for lead-to-provider matching and lead publishing.
"""
from unittest.mock import patch

import pytest

from leadmarket.core.errors import AuthError, ValidationError
from leadmarket.core.taxonomy import SWISS_CANTONS
from leadmarket.db.models.access_token import AccessToken
from leadmarket.db.models.admin_alert import AdminAlert
from leadmarket.db.models.lead import Lead
from leadmarket.db.models.notification import Notification
from leadmarket.db.models.outbox_event import OutboxEvent
from leadmarket.services import matching_service
from leadmarket.services.matching_service import (
    find_eligible_providers,
    notify_matching_providers,
    publish_lead,
)

from factories import auth_headers, make_lead, make_provider


def test_matching_example_selects_only_category_and_area_match(db, settings, owner):
    """elektriker/ZH/8001: A{ZH, elektriker} matches, B{8001, sanitaer} does not."""
    provider_a = make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    make_provider(db, "b@example.ch", ["sanitaer"], ["8001"])
    lead = make_lead(db, owner, category="elektriker", canton="ZH", postal_code="8001")

    eligible = find_eligible_providers(db, lead)

    assert [p.user_id for p in eligible] == [provider_a.id]


def test_unapproved_providers_are_not_matched(db, settings, owner):
    make_provider(db, "pending@example.ch", ["elektriker"], ["ZH"], verification_status="pending")
    make_provider(db, "rejected@example.ch", ["elektriker"], ["ZH"], verification_status="rejected")
    lead = make_lead(db, owner)

    assert find_eligible_providers(db, lead) == []


def test_nationwide_provider_matches_any_canton(db, settings, owner):
    provider = make_provider(db, "ch@example.ch", ["elektroinstallationen"], list(SWISS_CANTONS))
    lead = make_lead(db, owner, category="elektro_wallbox", canton="TI", postal_code="6900")

    assert [p.user_id for p in find_eligible_providers(db, lead)] == [provider.id]


def test_notify_issues_lead_token_notification_and_email(db, settings, owner):
    provider = make_provider(db, "a@example.ch", ["elektriker"], ["ZH"], company_name="Strom AG")
    lead = make_lead(db, owner)

    summary = notify_matching_providers(db, settings, lead)

    assert summary == {"eligible": 1, "notified": 1, "skipped": 0, "errors": 0}
    token = db.query(AccessToken).filter(AccessToken.user_id == provider.id).one()
    assert token.resource_type == "lead"
    assert token.resource_id == lead.id

    notification = db.query(Notification).filter(Notification.user_id == provider.id).one()
    assert notification.type == "new_lead"
    assert notification.related_id == lead.id

    email = db.query(OutboxEvent).one()
    assert email.recipient == "a@example.ch"
    assert f"/opportunity/{lead.id}?token={token.token}" in email.html_body


def test_rerun_does_not_notify_twice(db, settings, owner):
    """Second matching run skips providers already notified for this lead."""
    make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    lead = make_lead(db, owner)

    notify_matching_providers(db, settings, lead)
    summary = notify_matching_providers(db, settings, lead)

    assert summary["notified"] == 0
    assert summary["skipped"] == 1
    assert db.query(Notification).count() == 1
    assert db.query(OutboxEvent).count() == 1


def test_orphan_lead_raises_alert_but_stays_active(db, settings, owner):
    make_provider(db, "b@example.ch", ["sanitaer"], ["BE"])
    lead = make_lead(db, owner)

    summary = notify_matching_providers(db, settings, lead)

    assert summary["eligible"] == 0
    alert = db.query(AdminAlert).one()
    assert alert.type == "orphan_lead"
    assert alert.meta["lead_id"] == lead.id
    db.refresh(lead)
    assert lead.status == "active"


def test_one_failing_provider_does_not_abort_batch(db, settings, owner):
    provider_a = make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    provider_b = make_provider(db, "b@example.ch", ["elektriker"], ["ZH"])
    lead = make_lead(db, owner)

    real_issue_token = matching_service.issue_token

    def flaky_issue_token(db_, settings_, user_id, **kwargs):
        if user_id == provider_a.id:
            raise RuntimeError("boom")
        return real_issue_token(db_, settings_, user_id=user_id, **kwargs)

    with patch.object(matching_service, "issue_token", side_effect=flaky_issue_token):
        summary = notify_matching_providers(db, settings, lead)

    assert summary == {"eligible": 2, "notified": 1, "skipped": 0, "errors": 1}
    notified = [n.user_id for n in db.query(Notification).all()]
    assert notified == [provider_b.id]


def test_publish_activates_draft_with_default_deadline(db, settings, owner):
    make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    lead = make_lead(db, owner, status="draft")

    summary = publish_lead(db, settings, lead.id, owner.id)

    db.refresh(lead)
    assert lead.status == "active"
    assert lead.proposal_deadline is not None
    assert summary["notified"] == 1


def test_publish_rejects_non_owner(db, settings, owner):
    lead = make_lead(db, owner, status="draft")
    with pytest.raises(AuthError) as exc:
        publish_lead(db, settings, lead.id, owner.id + 100)
    assert exc.value.status_code == 403


def test_publish_rejects_expired_lead(db, settings, owner):
    lead = make_lead(db, owner, status="expired")
    with pytest.raises(ValidationError):
        publish_lead(db, settings, lead.id, owner.id)


def test_publish_endpoint(client, db, settings, owner):
    make_provider(db, "a@example.ch", ["elektriker"], ["ZH"])
    lead = make_lead(db, owner, status="draft")

    response = client.post(f"/leads/{lead.id}/publish", headers=auth_headers(owner, settings))

    assert response.status_code == 200
    assert response.json()["notified"] == 1
    db.expire_all()
    assert db.get(Lead, lead.id).status == "active"

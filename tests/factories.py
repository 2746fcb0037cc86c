"""
Small factories for test data.
"""
from datetime import timedelta

from leadmarket.core.security import create_access_token
from leadmarket.core.timeutils import utcnow
from leadmarket.db.models.lead import Lead
from leadmarket.db.models.proposal import Proposal
from leadmarket.db.models.provider_profile import ProviderProfile
from leadmarket.db.models.user import User


def make_user(db, email, role="owner", full_name=None):
    user = User(email=email, role=role, full_name=full_name, phone="+41 44 000 00 00")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def make_provider(db, email, categories, service_areas, verification_status="approved", company_name=None):
    user = make_user(db, email, role="provider", full_name=company_name)
    profile = ProviderProfile(
        user_id=user.id,
        company_name=company_name,
        categories=categories,
        service_areas=service_areas,
        verification_status=verification_status,
    )
    db.add(profile)
    db.commit()
    return user


def make_lead(db, owner, category="elektriker", canton="ZH", postal_code="8001",
              status="active", deadline=None, title="Steckdosen ersetzen"):
    if status == "active" and deadline is None:
        deadline = utcnow() + timedelta(days=10)
    lead = Lead(
        owner_id=owner.id,
        title=title,
        category=category,
        canton=canton,
        postal_code=postal_code,
        city="Zürich",
        status=status,
        proposal_deadline=deadline,
    )
    db.add(lead)
    db.commit()
    db.refresh(lead)
    return lead


def make_proposal(db, lead, provider, price_min=1000, price_max=1500, status="pending"):
    proposal = Proposal(
        lead_id=lead.id,
        provider_id=provider.id,
        price_min=price_min,
        price_max=price_max,
        message="Gerne erledigen wir das für Sie.",
        status=status,
    )
    db.add(proposal)
    db.commit()
    db.refresh(proposal)
    return proposal


def auth_headers(user, settings):
    token = create_access_token({"sub": str(user.id)}, settings)
    return {"Authorization": f"Bearer {token}"}

"""
Lead endpoints for owners (publish, contact) and providers (view, propose).
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy.orm import Session

from leadmarket.core.auth_dependency import get_app_settings, get_current_user_id, get_db, get_outbox_runner
from leadmarket.core.config import Settings
from leadmarket.schemas.leads import ContactDetailsResponse, LeadViewResponse, MatchSummary, PublishLeadRequest
from leadmarket.schemas.proposals import ProposalResponse, SubmitProposalRequest
from leadmarket.services.matching_service import publish_lead
from leadmarket.services.proposal_service import get_contact_details, record_lead_view, submit_proposal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leads", tags=["Leads"])


@router.post("/{lead_id}/publish", response_model=MatchSummary)
def publish(
    lead_id: int,
    background_tasks: BackgroundTasks,
    request: Optional[PublishLeadRequest] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    drain_outbox=Depends(get_outbox_runner),
):
    """
    Publish a draft lead and notify matching providers.

    Re-publishing an active lead re-runs matching; providers already
    notified are skipped.
    """
    deadline = request.proposal_deadline if request else None
    summary = publish_lead(db, settings, lead_id, user_id, deadline=deadline)
    background_tasks.add_task(drain_outbox)
    return summary


@router.post("/{lead_id}/views", response_model=LeadViewResponse)
def view(
    lead_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    return LeadViewResponse(recorded=record_lead_view(db, lead_id, user_id))


@router.get("/{lead_id}/contact", response_model=ContactDetailsResponse)
def contact(
    lead_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """Contact details of the other party; only after a proposal was accepted."""
    return get_contact_details(db, lead_id, user_id)


@router.post("/{lead_id}/proposals", response_model=ProposalResponse, status_code=status.HTTP_201_CREATED)
def propose(
    lead_id: int,
    request: SubmitProposalRequest,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    drain_outbox=Depends(get_outbox_runner),
):
    """
    Submit a proposal on an active lead.

    Uses one unit of the provider's proposal quota (429 when exhausted).
    """
    proposal = submit_proposal(
        db, settings,
        lead_id=lead_id,
        provider_id=user_id,
        price_min=request.price_min,
        price_max=request.price_max,
        message=request.message,
        estimated_duration_days=request.estimated_duration_days,
    )
    background_tasks.add_task(drain_outbox)
    return proposal

import logging

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from leadmarket.core.auth_dependency import get_app_settings, get_current_user_id, get_db, get_outbox_runner
from leadmarket.core.config import Settings
from leadmarket.schemas.proposals import (
    AcceptProposalResponse,
    BatchDecisionRequest,
    BatchDecisionResponse,
    ProposalResponse,
)
from leadmarket.services.proposal_service import accept_proposal, batch_decide, reject_proposal

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/proposals", tags=["Proposals"])


@router.post("/batch", response_model=BatchDecisionResponse)
def batch(
    request: BatchDecisionRequest,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    drain_outbox=Depends(get_outbox_runner),
):
    """
    Accept or reject several proposals; each is decided independently.

    Partial success is normal; per-id failures are listed in `errors`.
    """
    summary = batch_decide(db, settings, request.proposal_ids, request.action, user_id)
    if summary["succeeded"]:
        background_tasks.add_task(drain_outbox)
    return summary


@router.post("/{proposal_id}/accept", response_model=AcceptProposalResponse)
def accept(
    proposal_id: int,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    drain_outbox=Depends(get_outbox_runner),
):
    """Accept a proposal. 409 if the lead already has an accepted proposal."""
    conversation = accept_proposal(db, settings, proposal_id, user_id)
    background_tasks.add_task(drain_outbox)
    return AcceptProposalResponse(
        proposal_id=proposal_id,
        lead_id=conversation.lead_id,
        conversation_id=conversation.id,
    )


@router.post("/{proposal_id}/reject", response_model=ProposalResponse)
def reject(
    proposal_id: int,
    background_tasks: BackgroundTasks,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    drain_outbox=Depends(get_outbox_runner),
):
    proposal = reject_proposal(db, proposal_id, user_id)
    background_tasks.add_task(drain_outbox)
    return proposal

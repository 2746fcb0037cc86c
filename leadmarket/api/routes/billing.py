import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from leadmarket.core.auth_dependency import get_current_user_id, get_db
from leadmarket.schemas.billing import CheckoutRequest, CheckoutResponse
from leadmarket.services.subscription_service import start_checkout

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing", tags=["Billing"])


@router.post("/checkout", response_model=CheckoutResponse)
def checkout(
    request: CheckoutRequest,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
):
    """
    Start a subscription checkout.

    Returns the reference id, amount and currency for the Payrexx gateway.
    The plan is activated by the payment webhook, not here.
    """
    return start_checkout(db, user_id, request.plan_type)

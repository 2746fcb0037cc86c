"""
Payment gateway callbacks.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session

from leadmarket.core.auth_dependency import get_app_settings, get_db, get_outbox_runner
from leadmarket.core.config import Settings
from leadmarket.services.payment_webhook_service import process_payrexx_webhook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/payrexx")
async def payrexx_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
    drain_outbox=Depends(get_outbox_runner),
):
    """
    Payrexx transaction webhook.

    The signature is checked against the raw body, so the body is read
    before anything parses it.
    """
    payload = await request.body()
    signature = request.headers.get(settings.payrexx_signature_header)

    result = process_payrexx_webhook(db, settings, payload, signature)
    if not result.get("already_processed"):
        background_tasks.add_task(drain_outbox)
    return result

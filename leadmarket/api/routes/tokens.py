import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from leadmarket.core.auth_dependency import get_app_settings, get_db
from leadmarket.core.config import Settings
from leadmarket.core.errors import AuthError
from leadmarket.schemas.tokens import InvalidTokenResponse, ValidateTokenRequest, ValidateTokenResponse
from leadmarket.services.token_service import validate_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tokens", tags=["Tokens"])


@router.post(
    "/validate",
    response_model=ValidateTokenResponse,
    responses={401: {"model": InvalidTokenResponse}},
)
def validate(
    request: ValidateTokenRequest,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """
    Validate an email deep-link token.

    Single-use tokens are consumed by a successful call.
    """
    try:
        claims = validate_token(db, settings, request.token)
    except AuthError as e:
        db.rollback()
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"valid": False, "error": e.reason},
        )
    db.commit()

    return ValidateTokenResponse(
        valid=True,
        userId=claims.user_id,
        resourceType=claims.resource_type,
        resourceId=claims.resource_id,
        metadata=claims.metadata,
    )

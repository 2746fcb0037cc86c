"""
Pydantic schemas for access token validation.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ValidateTokenRequest(BaseModel):
    """Request schema for validating an email deep-link token."""
    token: str = Field(..., min_length=1, description="Opaque token from the deep link")

    class Config:
        json_schema_extra = {
            "example": {
                "token": "Yp3lK8w0QhD5c7N2x1aF4gR9tU6vZ0bM3eS8jH2kL5o"
            }
        }


class ValidateTokenResponse(BaseModel):
    """Response schema for a valid token."""
    valid: bool = Field(True, description="Always true on 200")
    userId: int = Field(..., description="Owner of the token")
    resourceType: str = Field(..., description="lead | proposal | dashboard | conversation | rating")
    resourceId: Optional[int] = Field(None, description="Id of the scoped resource, if any")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Payload stored at issue time")

    class Config:
        json_schema_extra = {
            "example": {
                "valid": True,
                "userId": 42,
                "resourceType": "lead",
                "resourceId": 1001,
                "metadata": None
            }
        }


class InvalidTokenResponse(BaseModel):
    """Response schema for an invalid token (401)."""
    valid: bool = Field(False)
    error: str = Field(..., description="expired | not_found")

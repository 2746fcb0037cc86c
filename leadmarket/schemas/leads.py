"""
Pydantic schemas for lead endpoints.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PublishLeadRequest(BaseModel):
    """Request schema for publishing a draft lead."""
    proposal_deadline: Optional[datetime] = Field(
        None, description="End of the bidding window; defaults to 14 days from now"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "proposal_deadline": "2026-11-01T18:00:00Z"
            }
        }


class MatchSummary(BaseModel):
    eligible: int
    notified: int
    skipped: int
    errors: int


class LeadViewResponse(BaseModel):
    recorded: bool = Field(..., description="False if the view was already recorded")


class ContactDetailsResponse(BaseModel):
    """Contact details of the other party after acceptance."""
    user_id: int
    name: str
    email: str
    phone: Optional[str] = None

"""
Pydantic schemas for proposal endpoints.
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator


class SubmitProposalRequest(BaseModel):
    """Request schema for a provider's bid on a lead."""
    price_min: int = Field(..., ge=0, description="Lower bound of the quoted price (CHF)")
    price_max: int = Field(..., ge=0, description="Upper bound of the quoted price (CHF)")
    message: str = Field("", max_length=5000, description="Free-text message to the owner")
    estimated_duration_days: Optional[int] = Field(None, ge=1, description="Estimated duration in days")

    @model_validator(mode="after")
    def check_price_range(self):
        if self.price_max < self.price_min:
            raise ValueError("price_max must be >= price_min")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "price_min": 1200,
                "price_max": 1800,
                "message": "Wir können nächste Woche starten.",
                "estimated_duration_days": 3
            }
        }


class ProposalResponse(BaseModel):
    id: int
    lead_id: int
    provider_id: int
    price_min: int
    price_max: int
    status: str

    class Config:
        from_attributes = True


class AcceptProposalResponse(BaseModel):
    """Response schema for an accepted proposal."""
    proposal_id: int
    lead_id: int
    conversation_id: int = Field(..., description="Conversation opened between owner and provider")


class BatchDecisionRequest(BaseModel):
    """Request schema for batch accept/reject."""
    proposal_ids: List[int] = Field(..., min_length=1, max_length=100)
    action: Literal["accept", "reject"]

    class Config:
        json_schema_extra = {
            "example": {
                "proposal_ids": [11, 12, 13],
                "action": "reject"
            }
        }


class BatchDecisionResponse(BaseModel):
    processed: int
    succeeded: int
    failed: int
    errors: Dict[int, str] = Field(default_factory=dict, description="Proposal id -> error code")

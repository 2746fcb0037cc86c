"""
Pydantic schemas for billing endpoints.
"""
from pydantic import BaseModel, Field


class CheckoutRequest(BaseModel):
    """Request schema for starting a subscription checkout."""
    plan_type: str = Field(..., description="Plan type: 'monthly', '6_month' or 'annual'",
                           pattern="^(monthly|6_month|annual)$")

    class Config:
        json_schema_extra = {
            "example": {
                "plan_type": "annual"
            }
        }


class CheckoutResponse(BaseModel):
    """Values handed to the payment gateway."""
    reference_id: str = Field(..., description="{userId}-{planType}-{timestamp}")
    plan_type: str
    amount: int = Field(..., description="Amount in minor units (Rappen)")
    currency: str

    class Config:
        json_schema_extra = {
            "example": {
                "reference_id": "42-annual-1760745600000",
                "plan_type": "annual",
                "amount": 96000,
                "currency": "CHF"
            }
        }

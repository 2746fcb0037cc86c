"""
Pydantic schemas for scheduler-triggered jobs.
"""
from pydantic import BaseModel


class ExpiryPassResult(BaseModel):
    expired: int
    proposals_withdrawn: int
    errors: int


class ReminderPassResult(BaseModel):
    leads: int
    owner_reminders: int
    provider_nudges: int
    errors: int


class SubscriptionSweepResult(BaseModel):
    downgraded: int
    warned: int
    errors: int


class PaymentReminderResult(BaseModel):
    first_sent: int
    final_sent: int
    errors: int


class RatingReminderResult(BaseModel):
    reminded: int
    errors: int


class OutboxResult(BaseModel):
    processed: int
    sent: int
    failed: int
    retrying: int

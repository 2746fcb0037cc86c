"""
Database models module.

This module imports all database models to ensure they are registered with SQLAlchemy's Base.metadata
before table creation.

All models must be imported here to be included in database migrations and table creation.
"""
from leadmarket.db.models.user import User
from leadmarket.db.models.lead import Lead
from leadmarket.db.models.provider_profile import ProviderProfile
from leadmarket.db.models.proposal import Proposal
from leadmarket.db.models.subscription import Subscription
from leadmarket.db.models.payment_record import PaymentRecord
from leadmarket.db.models.access_token import AccessToken
from leadmarket.db.models.notification import Notification
from leadmarket.db.models.conversation import Conversation
from leadmarket.db.models.lead_view import LeadView
from leadmarket.db.models.outbox_event import OutboxEvent
from leadmarket.db.models.notification_receipt import NotificationReceipt
from leadmarket.db.models.admin_alert import AdminAlert

# Explicitly export all models for clarity
__all__ = [
    "User",
    "Lead",
    "ProviderProfile",
    "Proposal",
    "Subscription",
    "PaymentRecord",
    "AccessToken",
    "Notification",
    "Conversation",
    "LeadView",
    "OutboxEvent",
    "NotificationReceipt",
    "AdminAlert",
]

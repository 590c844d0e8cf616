"""SQLAlchemy models for Threadifier.

All models are imported here so that ``Base.metadata`` knows every table
before ``create_all`` runs. If you add a new model, import it in this file.
"""

from threadifier.models.user import User
from threadifier.models.webhook_event import ProcessedWebhookEvent

__all__ = [
    "ProcessedWebhookEvent",
    "User",
]

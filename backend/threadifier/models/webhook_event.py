"""Processed Stripe webhook events — idempotency ledger."""

from datetime import datetime

from sqlalchemy import String, func
from sqlalchemy.orm import Mapped, mapped_column

from threadifier.database import Base


class ProcessedWebhookEvent(Base):
    """One row per Stripe event whose transition has been committed."""

    __tablename__ = "processed_webhook_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    stripe_event_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(server_default=func.now())

    def __repr__(self) -> str:
        return f"<ProcessedWebhookEvent {self.stripe_event_id} type={self.event_type}>"

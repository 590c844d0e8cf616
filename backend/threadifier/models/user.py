"""User model — one row per account, holding entitlement and credit state."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from threadifier.database import Base, TimestampMixin


class User(TimestampMixin, Base):
    """Account record keyed by the identity provider's uid.

    Subscription and credit fields sit on the same row so a single UPDATE
    changes them together.
    """

    __tablename__ = "users"

    # Identity provider uid
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Subscription, mirrored from Stripe
    plan: Mapped[str] = mapped_column(String(50), nullable=False, default="free", server_default="free")
    subscription_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    stripe_customer_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True, index=True)
    stripe_subscription_id: Mapped[str | None] = mapped_column(String(255), unique=True, nullable=True)
    current_period_end: Mapped[datetime | None] = mapped_column(nullable=True)
    cancel_at_period_end: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false"
    )

    # Credits
    credits_available: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    credits_lifetime: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    credits_last_refresh_at: Mapped[datetime | None] = mapped_column(nullable=True)
    # Append-only: [{"amount", "earnedAt", "expiresAt", "source"}, ...]
    credit_expirations: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)

    # Settings
    auto_append_referral: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True, server_default="true"
    )

    def __repr__(self) -> str:
        return f"<User id={self.id!r} email={self.email!r} plan={self.plan!r}>"

"""Newsletter subscriber models."""
from datetime import datetime, timedelta
from enum import Enum

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from src.core.database import Base, utcnow
from src.core.security import generate_url_token, hash_token


class SubscriberStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    UNSUBSCRIBED = "unsubscribed"
    BOUNCED = "bounced"


class SubscriptionSource(str, Enum):
    BLOG_FOOTER = "blog-footer"
    BLOG_MODAL = "blog-modal"
    NEWSLETTER_PAGE = "newsletter-page"
    API = "api"


class NewsletterFrequency(str, Enum):
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"


def default_preferences() -> dict:
    return {"frequency": NewsletterFrequency.IMMEDIATE.value, "categories": []}


class NewsletterSubscriber(Base):
    __tablename__ = "newsletter_subscribers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(50), default="", nullable=False)

    status: Mapped[SubscriberStatus] = mapped_column(
        SQLEnum(SubscriberStatus, values_callable=lambda x: [e.value for e in x]),
        default=SubscriberStatus.PENDING,
        nullable=False,
        index=True,
    )
    source: Mapped[SubscriptionSource] = mapped_column(
        SQLEnum(SubscriptionSource, values_callable=lambda x: [e.value for e in x]),
        default=SubscriptionSource.BLOG_FOOTER,
        nullable=False,
    )
    preferences: Mapped[dict] = mapped_column(JSON, default=default_preferences, nullable=False)

    # Tokens
    confirmation_token: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    confirmation_token_expires: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    unsubscribe_token: Mapped[str | None] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
    )

    # Lifecycle timestamps
    subscription_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True,
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    unsubscribed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Request metadata
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(500), nullable=True)
    referrer: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Engagement counters
    last_email_sent: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    emails_sent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    emails_opened: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    emails_clicked: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_clicked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        onupdate=utcnow,
        nullable=True,
    )

    @property
    def engagement_rate(self) -> float:
        if not self.emails_sent:
            return 0.0
        return (self.emails_opened + self.emails_clicked) / (self.emails_sent * 2) * 100

    @property
    def preferred_categories(self) -> list[str]:
        return list((self.preferences or {}).get("categories") or [])

    def generate_confirmation_token(self, expires_in: timedelta) -> str:
        """Mint a confirmation token, store its hash and return the raw value."""
        token = generate_url_token()
        self.confirmation_token = hash_token(token)
        self.confirmation_token_expires = utcnow() + expires_in
        return token

    def confirm(self) -> None:
        self.status = SubscriberStatus.ACTIVE
        self.confirmed_at = utcnow()
        self.confirmation_token = None
        self.confirmation_token_expires = None
        if not self.unsubscribe_token:
            self.unsubscribe_token = generate_url_token()

    def unsubscribe(self) -> None:
        self.status = SubscriberStatus.UNSUBSCRIBED
        self.unsubscribed_at = utcnow()
        self.confirmation_token = None
        self.confirmation_token_expires = None

    def record_email_sent(self) -> None:
        self.emails_sent = (self.emails_sent or 0) + 1
        self.last_email_sent = utcnow()

    def __repr__(self) -> str:
        return f"<NewsletterSubscriber(id={self.id}, email={self.email}, status={self.status})>"

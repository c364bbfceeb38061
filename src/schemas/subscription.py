"""Newsletter subscription schemas."""
from datetime import datetime

from pydantic import EmailStr, Field, field_validator

from src.models.newsletter import NewsletterFrequency, SubscriptionSource
from src.schemas.common import CamelModel, DailyCount, ItemPagination


class SubscriptionPreferences(CamelModel):
    frequency: NewsletterFrequency | None = None
    categories: list[str] | None = None

    @field_validator("categories")
    @classmethod
    def normalize_categories(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return value
        seen: list[str] = []
        for category in value:
            tag = category.strip().lower()
            if tag and tag not in seen:
                seen.append(tag)
        return seen


class SubscribeRequest(CamelModel):
    email: EmailStr
    first_name: str | None = Field(None, max_length=50)
    source: SubscriptionSource = SubscriptionSource.BLOG_FOOTER
    preferences: SubscriptionPreferences | None = None


class SubscribeResponse(CamelModel):
    message: str
    email: str
    outcome: str


class ConfirmedSubscriber(CamelModel):
    email: str
    confirmed_at: datetime | None = None


class ConfirmResponse(CamelModel):
    message: str
    subscriber: ConfirmedSubscriber


class UnsubscribeResponse(CamelModel):
    message: str
    email: str
    already_unsubscribed: bool = False


class PreferencesUpdateRequest(CamelModel):
    preferences: SubscriptionPreferences


class PreferencesResponse(CamelModel):
    message: str
    preferences: dict


class SubscriberResponse(CamelModel):
    id: int
    email: str
    first_name: str
    status: str
    source: str
    preferences: dict
    subscription_date: datetime
    confirmed_at: datetime | None = None
    unsubscribed_at: datetime | None = None
    last_email_sent: datetime | None = None
    emails_sent: int = 0
    emails_opened: int = 0
    emails_clicked: int = 0
    engagement_rate: float = 0.0
    created_at: datetime


class SubscriberListResponse(CamelModel):
    subscribers: list[SubscriberResponse]
    pagination: ItemPagination


class SubscriberStatusCounts(CamelModel):
    total: int = 0
    active: int = 0
    pending: int = 0
    unsubscribed: int = 0
    bounced: int = 0


class SourceCount(CamelModel):
    source: str
    count: int


class SubscriptionStatsResponse(CamelModel):
    stats: SubscriberStatusCounts
    recent_subscriptions: list[DailyCount]
    top_sources: list[SourceCount]
    generated_at: datetime


class SendNewsletterRequest(CamelModel):
    blog_id: int | None = None
    test_email: EmailStr | None = None


class NewsletterDispatchResponse(CamelModel):
    message: str
    total_recipients: int
    sent_count: int
    error_count: int
    blog_title: str

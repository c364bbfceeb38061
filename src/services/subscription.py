"""Newsletter subscriber lifecycle service."""
import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config import settings
from src.core.database import utcnow
from src.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.core.security import hash_token
from src.models.newsletter import (
    NewsletterSubscriber,
    SubscriberStatus,
    SubscriptionSource,
    default_preferences,
)
from src.schemas.common import DailyCount, ItemPagination
from src.schemas.subscription import (
    SourceCount,
    SubscriberListResponse,
    SubscriberResponse,
    SubscriberStatusCounts,
    SubscriptionStatsResponse,
)
from src.services.email import EmailService

logger = structlog.get_logger()

SORTABLE_FIELDS = {
    "subscriptionDate": NewsletterSubscriber.subscription_date,
    "email": NewsletterSubscriber.email,
    "status": NewsletterSubscriber.status,
    "emailsSent": NewsletterSubscriber.emails_sent,
    "createdAt": NewsletterSubscriber.created_at,
}
STATS_WINDOW_DAYS = 30


class SubscribeOutcome(str, Enum):
    ALREADY_SUBSCRIBED = "already_subscribed"
    CONFIRMATION_RESENT = "confirmation_resent"
    RESUBSCRIBED = "resubscribed"
    SUBSCRIBED = "subscribed"


@dataclass
class SubscribeResult:
    outcome: SubscribeOutcome
    subscriber: NewsletterSubscriber


@dataclass
class UnsubscribeResult:
    subscriber: NewsletterSubscriber
    already_unsubscribed: bool


def merge_preferences(current: dict | None, updates: dict) -> dict:
    """Shallow merge; keys present in ``updates`` win."""
    merged = dict(default_preferences())
    merged.update(current or {})
    merged.update(updates)
    return merged


def to_subscriber_response(subscriber: NewsletterSubscriber) -> SubscriberResponse:
    return SubscriberResponse(
        id=subscriber.id,
        email=subscriber.email,
        first_name=subscriber.first_name or "",
        status=subscriber.status.value,
        source=subscriber.source.value,
        preferences=subscriber.preferences or default_preferences(),
        subscription_date=subscriber.subscription_date,
        confirmed_at=subscriber.confirmed_at,
        unsubscribed_at=subscriber.unsubscribed_at,
        last_email_sent=subscriber.last_email_sent,
        emails_sent=subscriber.emails_sent,
        emails_opened=subscriber.emails_opened,
        emails_clicked=subscriber.emails_clicked,
        engagement_rate=subscriber.engagement_rate,
        created_at=subscriber.created_at,
    )


class SubscriptionService:
    """Service for newsletter subscription operations."""

    def __init__(self, db: AsyncSession, mailer: EmailService):
        self.db = db
        self.mailer = mailer

    async def get_by_email(self, email: str) -> NewsletterSubscriber | None:
        result = await self.db.execute(
            select(NewsletterSubscriber).where(NewsletterSubscriber.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_by_unsubscribe_token(self, token: str) -> NewsletterSubscriber | None:
        result = await self.db.execute(
            select(NewsletterSubscriber).where(NewsletterSubscriber.unsubscribe_token == token)
        )
        return result.scalar_one_or_none()

    async def _send_confirmation(self, subscriber: NewsletterSubscriber, token: str) -> None:
        # Delivery is best-effort; the subscription write already happened
        try:
            await self.mailer.send_subscription_confirmation(subscriber, token)
        except Exception as e:
            logger.warning(
                "Confirmation email failed",
                email=subscriber.email,
                error=str(e),
            )

    async def subscribe(
        self,
        email: str,
        first_name: str | None = None,
        source: SubscriptionSource = SubscriptionSource.BLOG_FOOTER,
        preferences: dict | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        referrer: str | None = None,
    ) -> SubscribeResult:
        """
        Start (or restart) double opt-in for an email address.

        Active subscribers are left untouched. Pending subscribers get a fresh
        confirmation token. Unsubscribed or bounced subscribers go back to
        pending with their preferences merged. Unknown emails get a new record.
        """
        email = email.strip().lower()
        preferences = preferences or {}
        token_ttl = timedelta(hours=settings.CONFIRMATION_TOKEN_EXPIRE_HOURS)

        subscriber = await self.get_by_email(email)

        if subscriber and subscriber.status == SubscriberStatus.ACTIVE:
            logger.info("Already subscribed", email=email)
            return SubscribeResult(SubscribeOutcome.ALREADY_SUBSCRIBED, subscriber)

        if subscriber and subscriber.status == SubscriberStatus.PENDING:
            token = subscriber.generate_confirmation_token(token_ttl)
            await self.db.commit()
            await self._send_confirmation(subscriber, token)
            logger.info("Confirmation email resent", email=email)
            return SubscribeResult(SubscribeOutcome.CONFIRMATION_RESENT, subscriber)

        if subscriber:
            subscriber.status = SubscriberStatus.PENDING
            subscriber.subscription_date = utcnow()
            subscriber.unsubscribed_at = None
            subscriber.first_name = first_name or subscriber.first_name
            subscriber.preferences = merge_preferences(subscriber.preferences, preferences)
            outcome = SubscribeOutcome.RESUBSCRIBED
        else:
            subscriber = NewsletterSubscriber(
                email=email,
                first_name=first_name or "",
                source=source,
                status=SubscriberStatus.PENDING,
                preferences=merge_preferences(None, preferences),
                ip_address=ip_address,
                user_agent=user_agent,
                referrer=referrer,
            )
            self.db.add(subscriber)
            outcome = SubscribeOutcome.SUBSCRIBED

        token = subscriber.generate_confirmation_token(token_ttl)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("This email is already registered.", field="email")

        await self._send_confirmation(subscriber, token)

        logger.info("Subscription created", email=email, outcome=outcome.value)
        return SubscribeResult(outcome, subscriber)

    async def confirm(self, token: str) -> NewsletterSubscriber:
        """Activate the subscriber holding an unexpired confirmation token."""
        if not token:
            raise ValidationError("Confirmation token is required", field="token")

        result = await self.db.execute(
            select(NewsletterSubscriber).where(
                NewsletterSubscriber.confirmation_token == hash_token(token),
                NewsletterSubscriber.status == SubscriberStatus.PENDING,
                NewsletterSubscriber.confirmation_token_expires > utcnow(),
            )
        )
        subscriber = result.scalar_one_or_none()
        if not subscriber:
            raise NotFoundError("Invalid or expired confirmation token", resource="subscriber")

        subscriber.confirm()
        await self.db.commit()

        logger.info("Subscription confirmed", email=subscriber.email)

        try:
            await self.mailer.send_welcome_email(subscriber)
        except Exception as e:
            logger.warning("Welcome email failed", email=subscriber.email, error=str(e))

        return subscriber

    async def unsubscribe(self, token: str) -> UnsubscribeResult:
        """
        Unsubscribe by the stable unsubscribe token.

        Repeating the call with the same token succeeds again and keeps the
        original ``unsubscribed_at``.
        """
        if not token:
            raise ValidationError("Unsubscribe token is required", field="token")

        subscriber = await self.get_by_unsubscribe_token(token)
        if not subscriber:
            raise NotFoundError("Invalid unsubscribe token", resource="subscriber")

        if subscriber.status == SubscriberStatus.UNSUBSCRIBED:
            return UnsubscribeResult(subscriber, already_unsubscribed=True)

        subscriber.unsubscribe()
        await self.db.commit()

        logger.info("Unsubscribed", email=subscriber.email)
        return UnsubscribeResult(subscriber, already_unsubscribed=False)

    async def update_preferences(self, token: str, preferences: dict) -> NewsletterSubscriber:
        subscriber = await self.get_by_unsubscribe_token(token)
        if not subscriber:
            raise NotFoundError("Invalid token", resource="subscriber")

        if subscriber.status != SubscriberStatus.ACTIVE:
            raise ValidationError("Subscription is not active")

        subscriber.preferences = merge_preferences(subscriber.preferences, preferences)
        await self.db.commit()

        logger.info("Preferences updated", email=subscriber.email)
        return subscriber

    async def list_subscribers(
        self,
        page: int = 1,
        limit: int = 20,
        status: str = "all",
        search: str = "",
        sort_by: str = "subscriptionDate",
        sort_order: str = "desc",
    ) -> SubscriberListResponse:
        conditions = []
        if status != "all":
            try:
                conditions.append(NewsletterSubscriber.status == SubscriberStatus(status))
            except ValueError:
                raise ValidationError(f"Invalid status filter: {status}", field="status")

        term = search.strip()
        if term:
            conditions.append(
                or_(
                    NewsletterSubscriber.email.icontains(term, autoescape=True),
                    NewsletterSubscriber.first_name.icontains(term, autoescape=True),
                )
            )

        column = SORTABLE_FIELDS.get(sort_by, NewsletterSubscriber.subscription_date)
        order = column.desc() if sort_order == "desc" else column.asc()

        total_result = await self.db.execute(
            select(func.count(NewsletterSubscriber.id)).where(*conditions)
        )
        total = total_result.scalar() or 0

        result = await self.db.execute(
            select(NewsletterSubscriber)
            .where(*conditions)
            .order_by(order, NewsletterSubscriber.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        subscribers = result.scalars().all()

        total_pages = math.ceil(total / limit)
        return SubscriberListResponse(
            subscribers=[to_subscriber_response(s) for s in subscribers],
            pagination=ItemPagination(
                current_page=page,
                total_pages=total_pages,
                total_items=total,
                items_per_page=limit,
                has_next_page=page < total_pages,
                has_prev_page=page > 1,
            ),
        )

    async def get_stats(self) -> SubscriptionStatsResponse:
        counts_result = await self.db.execute(
            select(NewsletterSubscriber.status, func.count(NewsletterSubscriber.id))
            .group_by(NewsletterSubscriber.status)
        )
        stats = SubscriberStatusCounts()
        for subscriber_status, count in counts_result.all():
            setattr(stats, SubscriberStatus(subscriber_status).value, count)
            stats.total += count

        since = utcnow() - timedelta(days=STATS_WINDOW_DAYS)
        recent_result = await self.db.execute(
            select(NewsletterSubscriber.subscription_date).where(
                NewsletterSubscriber.subscription_date >= since
            )
        )
        per_day = Counter(d.date().isoformat() for d in recent_result.scalars())

        sources_result = await self.db.execute(
            select(NewsletterSubscriber.source, func.count(NewsletterSubscriber.id))
            .group_by(NewsletterSubscriber.source)
            .order_by(func.count(NewsletterSubscriber.id).desc())
        )

        return SubscriptionStatsResponse(
            stats=stats,
            recent_subscriptions=[
                DailyCount(date=day, count=count) for day, count in sorted(per_day.items())
            ],
            top_sources=[
                SourceCount(source=SubscriptionSource(source).value, count=count)
                for source, count in sources_result.all()
            ],
            generated_at=datetime.now(timezone.utc),
        )

"""Newsletter dispatch service."""
import asyncio
from dataclasses import dataclass
from typing import Iterable, Sequence, Union

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.config import settings
from src.core.exceptions import NotFoundError, ValidationError
from src.models.blog import Blog, BlogStatus
from src.models.newsletter import NewsletterSubscriber, SubscriberStatus
from src.services.email import EmailService

logger = structlog.get_logger()


@dataclass
class PreviewRecipient:
    """Stand-in subscriber for a one-off test send; never persisted."""
    email: str
    first_name: str = "Test User"
    unsubscribe_token: str | None = "test"


Recipient = Union[NewsletterSubscriber, PreviewRecipient]


@dataclass
class DispatchResult:
    total_recipients: int
    sent_count: int
    error_count: int


def matches_blog_categories(
    preferred: Iterable[str] | None,
    blog_categories: Iterable[str] | None,
) -> bool:
    """
    Decide whether a subscriber should hear about a blog.

    No preferred categories means every blog. A blog without categories goes
    to everyone. Otherwise at least one category has to overlap.
    """
    wanted = {c.lower() for c in preferred or []}
    if not wanted:
        return True
    offered = {c.lower() for c in blog_categories or []}
    if not offered:
        return True
    return bool(wanted & offered)


def _batches(items: Sequence[Recipient], size: int) -> list[Sequence[Recipient]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class NewsletterDispatcher:
    """Sends a blog notification to its audience in throttled batches."""

    def __init__(
        self,
        db: AsyncSession,
        email_service: EmailService,
        batch_size: int | None = None,
        batch_delay: float | None = None,
    ):
        self.db = db
        self.email_service = email_service
        self.batch_size = (
            settings.NEWSLETTER_BATCH_SIZE if batch_size is None else batch_size
        )
        self.batch_delay = (
            settings.NEWSLETTER_BATCH_DELAY_SECONDS if batch_delay is None else batch_delay
        )
        if self.batch_size < 1:
            raise ValueError("batch_size must be at least 1")

    async def select_recipients(
        self,
        blog: Blog,
        test_email: str | None = None,
    ) -> list[Recipient]:
        if test_email:
            return [PreviewRecipient(email=test_email.lower())]

        result = await self.db.execute(
            select(NewsletterSubscriber)
            .where(NewsletterSubscriber.status == SubscriberStatus.ACTIVE)
            .order_by(NewsletterSubscriber.id)
        )
        return [
            subscriber
            for subscriber in result.scalars().all()
            if matches_blog_categories(subscriber.preferred_categories, blog.categories)
        ]

    async def _send_one(self, recipient: Recipient, blog: Blog) -> bool:
        try:
            await self.email_service.send_blog_notification(recipient, blog)
        except Exception as e:
            logger.error(
                "Newsletter send failed",
                email=recipient.email,
                blog_id=blog.id,
                error=str(e),
            )
            return False
        return True

    async def dispatch(self, blog: Blog, test_email: str | None = None) -> DispatchResult:
        """
        Send ``blog`` to every selected recipient.

        Batches run strictly one after another with ``batch_delay`` seconds in
        between; sends inside a batch run concurrently. A failed send is
        counted and never stops the run.
        """
        recipients = await self.select_recipients(blog, test_email)
        sent_count = 0
        error_count = 0

        batches = _batches(recipients, self.batch_size)
        for index, batch in enumerate(batches):
            outcomes = await asyncio.gather(
                *(self._send_one(recipient, blog) for recipient in batch)
            )

            delivered = [r for r, ok in zip(batch, outcomes) if ok]
            sent_count += len(delivered)
            error_count += len(batch) - len(delivered)

            for recipient in delivered:
                if isinstance(recipient, NewsletterSubscriber):
                    recipient.record_email_sent()
            if not test_email:
                await self.db.commit()

            logger.debug(
                "Newsletter batch processed",
                blog_id=blog.id,
                batch=index + 1,
                batches=len(batches),
                delivered=len(delivered),
            )

            if index < len(batches) - 1 and self.batch_delay > 0:
                await asyncio.sleep(self.batch_delay)

        logger.info(
            "Newsletter dispatched",
            blog_id=blog.id,
            total_recipients=len(recipients),
            sent_count=sent_count,
            error_count=error_count,
            test=bool(test_email),
        )
        return DispatchResult(
            total_recipients=len(recipients),
            sent_count=sent_count,
            error_count=error_count,
        )

    async def send_newsletter(
        self,
        blog_id: int | None,
        test_email: str | None = None,
    ) -> tuple[Blog, DispatchResult]:
        """Admin-triggered send for an existing published blog."""
        if blog_id is None:
            raise ValidationError("Blog ID is required", field="blogId")

        result = await self.db.execute(select(Blog).where(Blog.id == blog_id))
        blog = result.scalar_one_or_none()
        if not blog:
            raise NotFoundError("Blog not found", resource="blog", identifier=blog_id)

        if blog.status != BlogStatus.PUBLISHED:
            raise ValidationError("Blog must be published to send newsletter")

        return blog, await self.dispatch(blog, test_email)


async def dispatch_blog_newsletter_in_background(
    blog_id: int,
    session_factory: async_sessionmaker,
    email_service: EmailService,
) -> None:
    """
    Background task run after a blog is first published.

    Uses its own session because the request session is closed by the time
    this runs. Errors are logged and dropped.
    """
    try:
        async with session_factory() as session:
            result = await session.execute(select(Blog).where(Blog.id == blog_id))
            blog = result.scalar_one_or_none()
            if not blog or blog.status != BlogStatus.PUBLISHED:
                logger.warning("Skipping newsletter for unpublished blog", blog_id=blog_id)
                return

            dispatcher = NewsletterDispatcher(session, email_service)
            await dispatcher.dispatch(blog)
    except Exception as e:
        logger.error(
            "Background newsletter dispatch failed",
            blog_id=blog_id,
            error=str(e),
            exc_info=True,
        )

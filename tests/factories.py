"""Builders for rows and fakes shared by the test modules."""
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import utcnow
from src.core.exceptions import EmailDeliveryError
from src.core.security import generate_url_token
from src.models.blog import Blog, BlogComment, BlogStatus, CommentStatus
from src.models.newsletter import NewsletterSubscriber, SubscriberStatus
from src.models.user import User

BLOG_CONTENT = (
    "Event loops schedule coroutines cooperatively. This post walks through "
    "how awaiting I/O hands control back to the loop and why that matters."
)


class FakeEmailService:
    """Records outgoing mail instead of talking to SMTP."""

    def __init__(self):
        self.sent: list[tuple[str, str]] = []
        self.confirmation_tokens: dict[str, str] = {}
        self.fail_for: set[str] = set()

    def _record(self, kind: str, email: str) -> None:
        if email in self.fail_for:
            raise EmailDeliveryError(email, "mailbox unavailable")
        self.sent.append((kind, email))

    async def send_subscription_confirmation(self, subscriber, token: str) -> None:
        self.confirmation_tokens[subscriber.email] = token
        self._record("confirmation", subscriber.email)

    async def send_welcome_email(self, subscriber) -> None:
        self._record("welcome", subscriber.email)

    async def send_blog_notification(self, subscriber, blog) -> None:
        self._record("blog", subscriber.email)

    def recipients(self, kind: str) -> list[str]:
        return [email for sent_kind, email in self.sent if sent_kind == kind]


async def make_blog(
    db_session: AsyncSession,
    author: User,
    slug: str,
    status: BlogStatus = BlogStatus.PUBLISHED,
    categories: list[str] | None = None,
) -> Blog:
    blog = Blog(
        title=f"Post {slug}",
        slug=slug,
        content=BLOG_CONTENT,
        excerpt="A short tour of cooperative scheduling.",
        author_id=author.id,
        status=status,
        categories=categories or [],
        tags=[],
        published_at=utcnow() if status == BlogStatus.PUBLISHED else None,
    )
    db_session.add(blog)
    await db_session.commit()
    await db_session.refresh(blog)
    return blog


async def make_comment(
    db_session: AsyncSession,
    blog: Blog,
    content: str = "Great write-up, thanks!",
    status: CommentStatus = CommentStatus.APPROVED,
    parent_id: int | None = None,
    minutes_ago: int = 0,
) -> BlogComment:
    comment = BlogComment(
        blog_id=blog.id,
        author_name="Ada",
        author_email="ada@example.com",
        content=content,
        status=status,
        parent_comment_id=parent_id,
        created_at=utcnow() - timedelta(minutes=minutes_ago),
    )
    db_session.add(comment)
    await db_session.commit()
    await db_session.refresh(comment)
    return comment


async def make_subscriber(
    db_session: AsyncSession,
    email: str,
    status: SubscriberStatus = SubscriberStatus.ACTIVE,
    categories: list[str] | None = None,
) -> NewsletterSubscriber:
    subscriber = NewsletterSubscriber(
        email=email,
        first_name=email.split("@")[0].title(),
        status=status,
        preferences={"frequency": "immediate", "categories": categories or []},
        unsubscribe_token=generate_url_token() if status != SubscriberStatus.PENDING else None,
        confirmed_at=utcnow() if status == SubscriberStatus.ACTIVE else None,
    )
    db_session.add(subscriber)
    await db_session.commit()
    await db_session.refresh(subscriber)
    return subscriber

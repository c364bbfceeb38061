# Import all models here for Alembic to detect them
from src.models.user import User
from src.models.blog import Blog, BlogComment, BlogStatus, CommentStatus
from src.models.newsletter import (
    NewsletterSubscriber,
    NewsletterFrequency,
    SubscriberStatus,
    SubscriptionSource,
)

__all__ = [
    "User",
    "Blog",
    "BlogComment",
    "BlogStatus",
    "CommentStatus",
    "NewsletterSubscriber",
    "NewsletterFrequency",
    "SubscriberStatus",
    "SubscriptionSource",
]

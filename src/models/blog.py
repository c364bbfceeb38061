"""Blog post and comment models."""
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.core.database import Base, utcnow


class BlogStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class CommentStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Blog(Base):
    __tablename__ = "blogs"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    slug: Mapped[str] = mapped_column(String(220), unique=True, index=True, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    excerpt: Mapped[str] = mapped_column(String(300), nullable=False)
    featured_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)

    author_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    status: Mapped[BlogStatus] = mapped_column(
        SQLEnum(BlogStatus, values_callable=lambda x: [e.value for e in x]),
        default=BlogStatus.DRAFT,
        nullable=False,
        index=True,
    )
    categories: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    read_time: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    views: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

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

    # Relationships
    author: Mapped["User"] = relationship("User", back_populates="blogs")
    comments: Mapped[list["BlogComment"]] = relationship(
        "BlogComment",
        back_populates="blog",
        cascade="all, delete-orphan",
    )

    @property
    def is_published(self) -> bool:
        return self.status == BlogStatus.PUBLISHED

    def __repr__(self) -> str:
        return f"<Blog(id={self.id}, slug={self.slug}, status={self.status})>"


class BlogComment(Base):
    """
    A reader comment on a blog post.

    Comments live in their own table rather than inside the blog row, so
    moderation touches one comment row at a time. ``parent_comment_id`` is
    a plain integer, not a foreign key, so a reply may outlive its parent.
    """
    __tablename__ = "blog_comments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    blog_id: Mapped[int] = mapped_column(
        ForeignKey("blogs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    author_name: Mapped[str] = mapped_column(String(100), nullable=False)
    author_email: Mapped[str] = mapped_column(String(255), nullable=False)
    author_website: Mapped[str] = mapped_column(String(500), default="", nullable=False)

    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[CommentStatus] = mapped_column(
        SQLEnum(CommentStatus, values_callable=lambda x: [e.value for e in x]),
        default=CommentStatus.PENDING,
        nullable=False,
        index=True,
    )
    parent_comment_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    likes: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    # Moderation metadata
    moderated_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    moderated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    moderator_note: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Relationships
    blog: Mapped["Blog"] = relationship("Blog", back_populates="comments")

    def __repr__(self) -> str:
        return f"<BlogComment(id={self.id}, blog_id={self.blog_id}, status={self.status})>"

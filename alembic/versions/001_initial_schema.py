"""Initial schema - users, blogs, comments, newsletter subscribers

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


blog_status_enum = sa.Enum("draft", "published", "archived", name="blogstatus")
comment_status_enum = sa.Enum("pending", "approved", "rejected", name="commentstatus")
subscriber_status_enum = sa.Enum(
    "pending", "active", "unsubscribed", "bounced",
    name="subscriberstatus",
)
subscription_source_enum = sa.Enum(
    "blog-footer", "blog-modal", "newsletter-page", "api",
    name="subscriptionsource",
)


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=100), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("is_superuser", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    # Blogs table
    op.create_table(
        "blogs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("slug", sa.String(length=220), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("excerpt", sa.String(length=300), nullable=False),
        sa.Column("featured_image_url", sa.String(length=500), nullable=True),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("status", blog_status_enum, nullable=False, server_default="draft"),
        sa.Column("categories", sa.JSON(), nullable=False),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_time", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("views", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_blogs_slug"), "blogs", ["slug"], unique=True)
    op.create_index(op.f("ix_blogs_author_id"), "blogs", ["author_id"])
    op.create_index(op.f("ix_blogs_status"), "blogs", ["status"])

    # Blog comments table
    op.create_table(
        "blog_comments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("blog_id", sa.Integer(), nullable=False),
        sa.Column("author_name", sa.String(length=100), nullable=False),
        sa.Column("author_email", sa.String(length=255), nullable=False),
        sa.Column("author_website", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("status", comment_status_enum, nullable=False, server_default="pending"),
        sa.Column("parent_comment_id", sa.Integer(), nullable=True),
        sa.Column("likes", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("moderated_by_id", sa.Integer(), nullable=True),
        sa.Column("moderated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("moderator_note", sa.String(length=500), nullable=True),
        sa.ForeignKeyConstraint(["blog_id"], ["blogs.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["moderated_by_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_blog_comments_blog_id"), "blog_comments", ["blog_id"])
    op.create_index(op.f("ix_blog_comments_status"), "blog_comments", ["status"])
    op.create_index(op.f("ix_blog_comments_parent_comment_id"), "blog_comments", ["parent_comment_id"])
    op.create_index(op.f("ix_blog_comments_created_at"), "blog_comments", ["created_at"])

    # Newsletter subscribers table
    op.create_table(
        "newsletter_subscribers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("status", subscriber_status_enum, nullable=False, server_default="pending"),
        sa.Column("source", subscription_source_enum, nullable=False, server_default="blog-footer"),
        sa.Column("preferences", sa.JSON(), nullable=False),
        sa.Column("confirmation_token", sa.String(length=64), nullable=True),
        sa.Column("confirmation_token_expires", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unsubscribe_token", sa.String(length=64), nullable=True),
        sa.Column("subscription_date", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unsubscribed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.String(length=500), nullable=True),
        sa.Column("referrer", sa.String(length=500), nullable=True),
        sa.Column("last_email_sent", sa.DateTime(timezone=True), nullable=True),
        sa.Column("emails_sent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("emails_opened", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("emails_clicked", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_clicked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("unsubscribe_token"),
    )
    op.create_index(op.f("ix_newsletter_subscribers_email"), "newsletter_subscribers", ["email"], unique=True)
    op.create_index(op.f("ix_newsletter_subscribers_status"), "newsletter_subscribers", ["status"])
    op.create_index(
        op.f("ix_newsletter_subscribers_confirmation_token"),
        "newsletter_subscribers",
        ["confirmation_token"],
    )
    op.create_index(
        op.f("ix_newsletter_subscribers_subscription_date"),
        "newsletter_subscribers",
        ["subscription_date"],
    )


def downgrade() -> None:
    op.drop_table("newsletter_subscribers")
    op.drop_table("blog_comments")
    op.drop_table("blogs")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (
        subscription_source_enum,
        subscriber_status_enum,
        comment_status_enum,
        blog_status_enum,
    ):
        enum_type.drop(bind, checkfirst=True)

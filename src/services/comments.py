"""Comment submission, threading and moderation service."""
from collections import Counter
from dataclasses import dataclass
from datetime import timedelta

import structlog
from pydantic import validate_email
from pydantic_core import PydanticCustomError
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import utcnow
from src.core.exceptions import AppException, NotFoundError, ValidationError
from src.models.blog import Blog, BlogComment, BlogStatus, CommentStatus
from src.schemas.comment import (
    AdminAuthor,
    AdminComment,
    BulkModerateItem,
    BulkModerateResponse,
    BulkModerateResult,
    BulkModerateSummary,
    CommentAuthorIn,
    CommentStatsResponse,
    CommentStatusCounts,
    CommentThread,
    CommentTreeResponse,
    ModerationQueueItem,
    ModerationQueueResponse,
    PublicAuthor,
)
from src.schemas.common import DailyCount, Pagination
from src.utils.comment_tree import ALL_STATUSES, CommentNode, build_comment_tree, paginate

logger = structlog.get_logger()

MIN_CONTENT_LENGTH = 5
MAX_CONTENT_LENGTH = 1000
MAX_AUTHOR_NAME_LENGTH = 100
MODERATION_STATUSES = {s.value for s in CommentStatus}
BULK_MODERATION_STATUSES = {CommentStatus.APPROVED.value, CommentStatus.REJECTED.value}
STATS_WINDOW_DAYS = 30


@dataclass
class ModerationOutcome:
    comment: BlogComment
    blog: Blog


def to_admin_comment(comment: BlogComment) -> AdminComment:
    return AdminComment(
        id=comment.id,
        blog_id=comment.blog_id,
        author=AdminAuthor(
            name=comment.author_name,
            email=comment.author_email,
            website=comment.author_website or "",
        ),
        content=comment.content,
        status=comment.status.value,
        parent_comment=comment.parent_comment_id,
        likes=comment.likes,
        created_at=comment.created_at,
        moderated_by=comment.moderated_by_id,
        moderated_at=comment.moderated_at,
        moderator_note=comment.moderator_note,
    )


def to_thread(node: CommentNode) -> CommentThread:
    comment: BlogComment = node.comment
    return CommentThread(
        id=comment.id,
        author=PublicAuthor(name=comment.author_name, website=comment.author_website or ""),
        content=comment.content,
        parent_comment=comment.parent_comment_id,
        likes=comment.likes,
        created_at=comment.created_at,
        replies=[to_thread(reply) for reply in node.replies],
    )


class CommentService:
    """Service for blog comment operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_blog(self, blog_id: int, published_only: bool = False) -> Blog | None:
        query = select(Blog).where(Blog.id == blog_id)
        if published_only:
            query = query.where(Blog.status == BlogStatus.PUBLISHED)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def _get_comment(self, blog_id: int, comment_id: int) -> BlogComment | None:
        result = await self.db.execute(
            select(BlogComment).where(
                BlogComment.id == comment_id,
                BlogComment.blog_id == blog_id,
            )
        )
        return result.scalar_one_or_none()

    # ===========================================
    # Public operations
    # ===========================================

    async def submit_comment(
        self,
        blog_id: int,
        author: CommentAuthorIn | None,
        content: str | None,
        parent_comment_id: int | None = None,
    ) -> BlogComment:
        """Store a reader comment; it always waits for moderation."""
        name = (author.name or "").strip() if author else ""
        email = (author.email or "").strip().lower() if author else ""
        website = (author.website or "").strip() if author else ""
        text = (content or "").strip()

        if not name or not email or not text:
            raise ValidationError("Author name, email, and content are required")

        # Same email-validator check as EmailStr on subscriptions
        try:
            validate_email(email)
        except PydanticCustomError:
            raise ValidationError("Please provide a valid email address", field="author.email")

        if len(name) > MAX_AUTHOR_NAME_LENGTH:
            raise ValidationError("Name cannot exceed 100 characters", field="author.name")

        if len(text) < MIN_CONTENT_LENGTH:
            raise ValidationError("Comment must be at least 5 characters", field="content")

        if len(text) > MAX_CONTENT_LENGTH:
            raise ValidationError("Comment cannot exceed 1000 characters", field="content")

        blog = await self._get_blog(blog_id, published_only=True)
        if not blog:
            raise NotFoundError("Blog not found or not published", resource="blog")

        if parent_comment_id is not None:
            parent = await self._get_comment(blog_id, parent_comment_id)
            if not parent:
                raise ValidationError("Parent comment not found", field="parentComment")

        comment = BlogComment(
            blog_id=blog.id,
            author_name=name,
            author_email=email,
            author_website=website,
            content=text,
            parent_comment_id=parent_comment_id,
            status=CommentStatus.PENDING,
        )
        self.db.add(comment)
        await self.db.commit()
        await self.db.refresh(comment)

        logger.info(
            "Comment submitted",
            blog_id=blog.id,
            comment_id=comment.id,
            is_reply=parent_comment_id is not None,
        )
        return comment

    async def get_blog_comments(
        self,
        blog_id: int,
        page: int = 1,
        limit: int = 10,
        sort_order: str = "desc",
    ) -> CommentTreeResponse:
        """Approved comments of a published blog, threaded and paginated."""
        blog = await self._get_blog(blog_id, published_only=True)
        if not blog:
            raise NotFoundError("Blog not found", resource="blog")

        result = await self.db.execute(
            select(BlogComment).where(BlogComment.blog_id == blog.id)
        )
        comments = result.scalars().all()

        tree = build_comment_tree(
            comments,
            status=CommentStatus.APPROVED.value,
            sort_order=sort_order,
            page=page,
            limit=limit,
        )

        return CommentTreeResponse(
            comments=[to_thread(node) for node in tree.comments],
            pagination=Pagination(**vars(tree.pagination)),
        )

    # ===========================================
    # Admin operations
    # ===========================================

    async def list_for_moderation(
        self,
        page: int = 1,
        limit: int = 20,
        sort_order: str = "desc",
        status: str = CommentStatus.PENDING.value,
        search: str = "",
    ) -> ModerationQueueResponse:
        """Comments on published blogs, filtered by status and free text."""
        if status != ALL_STATUSES and status not in MODERATION_STATUSES:
            raise ValidationError(
                "Invalid status. Must be pending, approved, rejected, or all",
                field="status",
            )

        conditions = [Blog.status == BlogStatus.PUBLISHED]
        if status != ALL_STATUSES:
            conditions.append(BlogComment.status == CommentStatus(status))

        term = search.strip()
        if term:
            conditions.append(
                or_(
                    BlogComment.content.icontains(term, autoescape=True),
                    BlogComment.author_name.icontains(term, autoescape=True),
                    BlogComment.author_email.icontains(term, autoescape=True),
                    Blog.title.icontains(term, autoescape=True),
                )
            )

        count_result = await self.db.execute(
            select(func.count(BlogComment.id))
            .join(Blog, Blog.id == BlogComment.blog_id)
            .where(*conditions)
        )
        total = count_result.scalar() or 0

        order = BlogComment.created_at.desc() if sort_order == "desc" else BlogComment.created_at.asc()
        result = await self.db.execute(
            select(BlogComment, Blog.title, Blog.slug)
            .join(Blog, Blog.id == BlogComment.blog_id)
            .where(*conditions)
            .order_by(order, BlogComment.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )

        items = [
            ModerationQueueItem(
                blog_id=comment.blog_id,
                blog_title=title,
                blog_slug=slug,
                comment=to_admin_comment(comment),
            )
            for comment, title, slug in result.all()
        ]

        return ModerationQueueResponse(
            comments=items,
            pagination=Pagination(**vars(paginate(total, page, limit))),
        )

    async def _apply_moderation(
        self,
        blog_id: int,
        comment_id: int,
        status: str,
        moderator_id: int,
        note: str | None,
    ) -> ModerationOutcome:
        blog = await self._get_blog(blog_id)
        if not blog:
            raise NotFoundError("Blog not found", resource="blog", identifier=blog_id)

        comment = await self._get_comment(blog_id, comment_id)
        if not comment:
            raise NotFoundError("Comment not found", resource="comment", identifier=comment_id)

        comment.status = CommentStatus(status)
        comment.moderated_by_id = moderator_id
        comment.moderated_at = utcnow()
        if note:
            comment.moderator_note = note

        await self.db.commit()
        return ModerationOutcome(comment=comment, blog=blog)

    async def moderate_one(
        self,
        blog_id: int,
        comment_id: int,
        status: str,
        moderator_id: int,
        note: str | None = None,
    ) -> ModerationOutcome:
        """Set a comment's status and record who moderated it."""
        if status not in MODERATION_STATUSES:
            raise ValidationError(
                "Invalid status. Must be pending, approved, or rejected",
                field="status",
            )

        outcome = await self._apply_moderation(blog_id, comment_id, status, moderator_id, note)
        logger.info(
            "Comment moderated",
            blog_id=blog_id,
            comment_id=comment_id,
            status=status,
            moderator_id=moderator_id,
        )
        return outcome

    async def moderate_bulk(
        self,
        items: list[BulkModerateItem],
        status: str,
        moderator_id: int,
        note: str | None = None,
    ) -> BulkModerateResponse:
        """
        Moderate many comments, one at a time.

        Each item succeeds or fails on its own; a failure is reported in the
        result list and never stops the remaining items.
        """
        if not items:
            raise ValidationError("Comment IDs array is required", field="commentIds")

        if status not in BULK_MODERATION_STATUSES:
            raise ValidationError(
                "Status must be approved or rejected for bulk operations",
                field="status",
            )

        results: list[BulkModerateResult] = []
        successful = 0
        failed = 0

        for item in items:
            try:
                await self._apply_moderation(
                    item.blog_id, item.comment_id, status, moderator_id, note
                )
            except AppException as e:
                results.append(
                    BulkModerateResult(
                        blog_id=item.blog_id,
                        comment_id=item.comment_id,
                        status="error",
                        message=e.message,
                    )
                )
                failed += 1
                continue
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(
                    "Bulk moderation item failed",
                    blog_id=item.blog_id,
                    comment_id=item.comment_id,
                    error=str(e),
                )
                results.append(
                    BulkModerateResult(
                        blog_id=item.blog_id,
                        comment_id=item.comment_id,
                        status="error",
                        message="Database error",
                    )
                )
                failed += 1
                continue

            results.append(
                BulkModerateResult(
                    blog_id=item.blog_id,
                    comment_id=item.comment_id,
                    status="success",
                    new_status=status,
                )
            )
            successful += 1

        logger.info(
            "Bulk moderation completed",
            status=status,
            successful=successful,
            failed=failed,
            moderator_id=moderator_id,
        )

        return BulkModerateResponse(
            results=results,
            summary=BulkModerateSummary(
                total=len(items),
                successful=successful,
                failed=failed,
            ),
        )

    async def delete_comment(self, blog_id: int, comment_id: int) -> None:
        """Remove a comment that nothing replies to."""
        blog = await self._get_blog(blog_id)
        if not blog:
            raise NotFoundError("Blog not found", resource="blog", identifier=blog_id)

        comment = await self._get_comment(blog_id, comment_id)
        if not comment:
            raise NotFoundError("Comment not found", resource="comment", identifier=comment_id)

        replies_result = await self.db.execute(
            select(func.count(BlogComment.id)).where(
                BlogComment.blog_id == blog_id,
                BlogComment.parent_comment_id == comment_id,
            )
        )
        if (replies_result.scalar() or 0) > 0:
            raise ValidationError(
                "Cannot delete comment with replies. Please delete replies first."
            )

        await self.db.delete(comment)
        await self.db.commit()

        logger.info("Comment deleted", blog_id=blog_id, comment_id=comment_id)

    async def get_stats(self) -> CommentStatsResponse:
        """Counts per status and daily submissions over the last 30 days."""
        counts_result = await self.db.execute(
            select(BlogComment.status, func.count(BlogComment.id))
            .join(Blog, Blog.id == BlogComment.blog_id)
            .where(Blog.status == BlogStatus.PUBLISHED)
            .group_by(BlogComment.status)
        )

        stats = CommentStatusCounts()
        for comment_status, count in counts_result.all():
            setattr(stats, CommentStatus(comment_status).value, count)
            stats.total += count

        since = utcnow() - timedelta(days=STATS_WINDOW_DAYS)
        recent_result = await self.db.execute(
            select(BlogComment.created_at)
            .join(Blog, Blog.id == BlogComment.blog_id)
            .where(
                Blog.status == BlogStatus.PUBLISHED,
                BlogComment.created_at >= since,
            )
        )
        per_day = Counter(created.date().isoformat() for created in recent_result.scalars())

        return CommentStatsResponse(
            stats=stats,
            recent_activity=[
                DailyCount(date=day, count=count) for day, count in sorted(per_day.items())
            ],
        )

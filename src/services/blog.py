"""Blog post service."""
import math
import re
from dataclasses import dataclass

import structlog
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.database import utcnow
from src.core.exceptions import ConflictError, NotFoundError, ValidationError
from src.models.blog import Blog, BlogStatus
from src.models.user import User
from src.schemas.blog import BlogCreate, BlogListResponse, BlogSummaryResponse, BlogUpdate
from src.schemas.common import ItemPagination

logger = structlog.get_logger()

WORDS_PER_MINUTE = 200


def slugify(title: str) -> str:
    slug = re.sub(r"[^\w\s-]", "", title.lower())
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def estimate_read_time(content: str) -> int:
    words = len(content.split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


@dataclass
class BlogWriteResult:
    blog: Blog
    first_published: bool


class BlogService:
    """Service for blog post operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, blog_id: int) -> Blog:
        result = await self.db.execute(select(Blog).where(Blog.id == blog_id))
        blog = result.scalar_one_or_none()
        if not blog:
            raise NotFoundError("Blog not found", resource="blog", identifier=blog_id)
        return blog

    async def _ensure_slug_free(self, slug: str, exclude_id: int | None = None) -> None:
        query = select(Blog.id).where(Blog.slug == slug)
        if exclude_id is not None:
            query = query.where(Blog.id != exclude_id)
        result = await self.db.execute(query)
        if result.scalar_one_or_none() is not None:
            raise ConflictError("A blog with this slug already exists", field="slug")

    def _apply_status(self, blog: Blog, status: BlogStatus) -> bool:
        """Set status and report whether this is the blog's first publication."""
        first_published = (
            blog.status != BlogStatus.PUBLISHED
            and status == BlogStatus.PUBLISHED
            and blog.published_at is None
        )
        blog.status = status
        if status == BlogStatus.PUBLISHED and blog.published_at is None:
            blog.published_at = utcnow()
        return first_published

    async def _commit(self, blog: Blog) -> None:
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ConflictError("A blog with this slug already exists", field="slug")
        await self.db.refresh(blog)

    async def create_blog(self, data: BlogCreate, author: User) -> BlogWriteResult:
        slug = slugify(data.slug or data.title)
        if not slug:
            raise ValidationError("Could not derive a slug from the title", field="slug")
        await self._ensure_slug_free(slug)

        blog = Blog(
            title=data.title.strip(),
            slug=slug,
            content=data.content,
            excerpt=data.excerpt.strip(),
            featured_image_url=data.featured_image_url,
            author_id=author.id,
            status=BlogStatus.DRAFT,
            categories=data.categories,
            tags=data.tags,
            read_time=estimate_read_time(data.content),
        )
        first_published = self._apply_status(blog, data.status)
        self.db.add(blog)
        await self._commit(blog)

        logger.info(
            "Blog created",
            blog_id=blog.id,
            slug=blog.slug,
            status=blog.status.value,
            author_id=author.id,
        )
        return BlogWriteResult(blog=blog, first_published=first_published)

    async def update_blog(self, blog_id: int, data: BlogUpdate) -> BlogWriteResult:
        """Apply a partial update; author and timestamps are not editable."""
        blog = await self.get_by_id(blog_id)
        changes = data.model_dump(exclude_unset=True)

        new_status = changes.pop("status", None)

        requested_slug = changes.pop("slug", None)
        if requested_slug:
            slug = slugify(requested_slug)
            if slug != blog.slug:
                await self._ensure_slug_free(slug, exclude_id=blog.id)
                blog.slug = slug

        for field, value in changes.items():
            if value is None and field != "featured_image_url":
                continue
            setattr(blog, field, list(value) if isinstance(value, list) else value)

        if "content" in changes and changes["content"]:
            blog.read_time = estimate_read_time(changes["content"])

        first_published = False
        if new_status is not None:
            first_published = self._apply_status(blog, new_status)

        await self._commit(blog)

        logger.info(
            "Blog updated",
            blog_id=blog.id,
            fields=sorted(changes),
            first_published=first_published,
        )
        return BlogWriteResult(blog=blog, first_published=first_published)

    async def change_status(self, blog_id: int, status: BlogStatus) -> BlogWriteResult:
        blog = await self.get_by_id(blog_id)
        first_published = self._apply_status(blog, status)
        await self._commit(blog)

        logger.info("Blog status changed", blog_id=blog.id, status=status.value)
        return BlogWriteResult(blog=blog, first_published=first_published)

    async def list_published(
        self,
        page: int = 1,
        limit: int = 10,
        search: str = "",
        category: str | None = None,
    ) -> BlogListResponse:
        conditions = [Blog.status == BlogStatus.PUBLISHED]
        term = search.strip()
        if term:
            conditions.append(
                or_(
                    Blog.title.icontains(term, autoescape=True),
                    Blog.excerpt.icontains(term, autoescape=True),
                    Blog.content.icontains(term, autoescape=True),
                )
            )

        result = await self.db.execute(
            select(Blog).where(*conditions).order_by(Blog.published_at.desc(), Blog.id.desc())
        )
        blogs = list(result.scalars().all())

        # JSON columns are not portably queryable; filter categories in Python
        if category:
            wanted = category.strip().lower()
            blogs = [b for b in blogs if wanted in (b.categories or [])]

        total = len(blogs)
        total_pages = math.ceil(total / limit)
        window = blogs[(page - 1) * limit:page * limit]

        return BlogListResponse(
            blogs=[BlogSummaryResponse.model_validate(b) for b in window],
            pagination=ItemPagination(
                current_page=page,
                total_pages=total_pages,
                total_items=total,
                items_per_page=limit,
                has_next_page=page < total_pages,
                has_prev_page=page > 1,
            ),
        )

    async def get_published_by_slug(self, slug: str) -> Blog:
        """Public read; counts a view."""
        result = await self.db.execute(
            select(Blog).where(Blog.slug == slug, Blog.status == BlogStatus.PUBLISHED)
        )
        blog = result.scalar_one_or_none()
        if not blog:
            raise NotFoundError("Blog not found", resource="blog", identifier=slug)

        blog.views = (blog.views or 0) + 1
        await self.db.commit()
        return blog


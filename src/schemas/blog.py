"""Blog post schemas."""
from datetime import datetime

from pydantic import Field, field_validator

from src.models.blog import BlogStatus
from src.schemas.common import CamelModel, ItemPagination


def _normalize_labels(value: list[str] | None) -> list[str] | None:
    if value is None:
        return value
    labels: list[str] = []
    for label in value:
        cleaned = label.strip().lower()
        if cleaned and cleaned not in labels:
            labels.append(cleaned)
    return labels


class BlogBase(CamelModel):
    featured_image_url: str | None = Field(None, max_length=500)
    categories: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("categories", "tags")
    @classmethod
    def normalize_labels(cls, value: list[str]) -> list[str]:
        return _normalize_labels(value)

    @field_validator("tags")
    @classmethod
    def check_tag_length(cls, value: list[str]) -> list[str]:
        for tag in value:
            if len(tag) > 30:
                raise ValueError("Tag cannot exceed 30 characters")
        return value


class BlogCreate(BlogBase):
    title: str = Field(..., min_length=5, max_length=200)
    slug: str | None = Field(None, max_length=220)
    content: str = Field(..., min_length=50)
    excerpt: str = Field(..., min_length=20, max_length=300)
    status: BlogStatus = BlogStatus.DRAFT


class BlogUpdate(CamelModel):
    title: str | None = Field(None, min_length=5, max_length=200)
    slug: str | None = Field(None, max_length=220)
    content: str | None = Field(None, min_length=50)
    excerpt: str | None = Field(None, min_length=20, max_length=300)
    featured_image_url: str | None = Field(None, max_length=500)
    status: BlogStatus | None = None
    categories: list[str] | None = None
    tags: list[str] | None = None

    @field_validator("categories", "tags")
    @classmethod
    def normalize_labels(cls, value: list[str] | None) -> list[str] | None:
        return _normalize_labels(value)


class BlogStatusUpdate(CamelModel):
    status: BlogStatus


class BlogSummaryResponse(CamelModel):
    id: int
    title: str
    slug: str
    excerpt: str
    featured_image_url: str | None = None
    categories: list[str]
    tags: list[str]
    status: BlogStatus
    published_at: datetime | None = None
    read_time: int
    views: int


class BlogResponse(BlogSummaryResponse):
    content: str
    author_id: int
    created_at: datetime
    updated_at: datetime | None = None


class BlogListResponse(CamelModel):
    blogs: list[BlogSummaryResponse]
    pagination: ItemPagination

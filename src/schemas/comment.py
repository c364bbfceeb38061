"""Comment schemas."""
from datetime import datetime

from pydantic import Field

from src.schemas.common import CamelModel, DailyCount, Pagination


class CommentAuthorIn(CamelModel):
    name: str | None = None
    email: str | None = None
    website: str | None = None


class CommentCreate(CamelModel):
    author: CommentAuthorIn | None = None
    content: str | None = None
    parent_comment: int | None = None


class CommentCreated(CamelModel):
    comment_id: int


class PublicAuthor(CamelModel):
    name: str
    website: str = ""


class CommentThread(CamelModel):
    """An approved comment with its nested replies, as shown to readers."""
    id: int
    author: PublicAuthor
    content: str
    parent_comment: int | None = None
    likes: int = 0
    created_at: datetime
    replies: list["CommentThread"] = Field(default_factory=list)


class CommentTreeResponse(CamelModel):
    comments: list[CommentThread]
    pagination: Pagination


class AdminAuthor(CamelModel):
    name: str
    email: str
    website: str = ""


class AdminComment(CamelModel):
    id: int
    blog_id: int
    author: AdminAuthor
    content: str
    status: str
    parent_comment: int | None = None
    likes: int = 0
    created_at: datetime
    moderated_by: int | None = None
    moderated_at: datetime | None = None
    moderator_note: str | None = None


class ModerationQueueItem(CamelModel):
    blog_id: int
    blog_title: str
    blog_slug: str
    comment: AdminComment


class ModerationQueueResponse(CamelModel):
    comments: list[ModerationQueueItem]
    pagination: Pagination


class ModerateRequest(CamelModel):
    status: str
    moderator_note: str | None = Field(None, max_length=500)


class ModeratedComment(AdminComment):
    blog_title: str
    blog_slug: str


class BulkModerateItem(CamelModel):
    blog_id: int
    comment_id: int


class BulkModerateRequest(CamelModel):
    comment_ids: list[BulkModerateItem] = Field(default_factory=list)
    status: str
    moderator_note: str | None = Field(None, max_length=500)


class BulkModerateResult(CamelModel):
    blog_id: int
    comment_id: int
    status: str
    new_status: str | None = None
    message: str | None = None


class BulkModerateSummary(CamelModel):
    total: int
    successful: int
    failed: int


class BulkModerateResponse(CamelModel):
    results: list[BulkModerateResult]
    summary: BulkModerateSummary


class CommentStatusCounts(CamelModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0


class CommentStatsResponse(CamelModel):
    stats: CommentStatusCounts
    recent_activity: list[DailyCount]

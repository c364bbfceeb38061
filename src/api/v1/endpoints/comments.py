"""Blog comment endpoints."""
from typing import Literal

from fastapi import APIRouter, Depends, Query, status

from src.core.deps import CurrentAdmin, DbSession
from src.middleware.rate_limit import submission_rate_limit
from src.schemas.comment import (
    BulkModerateRequest,
    BulkModerateResponse,
    CommentCreate,
    CommentCreated,
    CommentStatsResponse,
    CommentTreeResponse,
    ModerateRequest,
    ModeratedComment,
    ModerationQueueResponse,
)
from src.schemas.common import ApiResponse
from src.services.comments import CommentService, to_admin_comment

router = APIRouter()

SortOrder = Literal["asc", "desc"]


# ===========================================
# Public
# ===========================================

@router.post(
    "/blog/{blog_id}",
    response_model=ApiResponse[CommentCreated],
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(submission_rate_limit)],
)
async def submit_comment(
    blog_id: int,
    request: CommentCreate,
    db: DbSession,
) -> ApiResponse[CommentCreated]:
    """Submit a comment or reply; it is held for moderation."""
    service = CommentService(db)
    comment = await service.submit_comment(
        blog_id=blog_id,
        author=request.author,
        content=request.content,
        parent_comment_id=request.parent_comment,
    )
    return ApiResponse(
        message="Comment submitted successfully and is pending moderation",
        data=CommentCreated(comment_id=comment.id),
    )


@router.get("/blog/{blog_id}", response_model=ApiResponse[CommentTreeResponse])
async def get_blog_comments(
    blog_id: int,
    db: DbSession,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    sort_order: SortOrder = Query("desc", alias="sortOrder"),
) -> ApiResponse[CommentTreeResponse]:
    """Approved comments of a published blog as a threaded tree."""
    service = CommentService(db)
    data = await service.get_blog_comments(blog_id, page=page, limit=limit, sort_order=sort_order)
    return ApiResponse(message="Comments retrieved successfully", data=data)


# ===========================================
# Admin
# ===========================================

@router.get("/pending", response_model=ApiResponse[ModerationQueueResponse])
async def list_comments_for_moderation(
    current_user: CurrentAdmin,
    db: DbSession,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    sort_order: SortOrder = Query("desc", alias="sortOrder"),
    comment_status: str = Query("pending", alias="status"),
    search: str = Query(""),
) -> ApiResponse[ModerationQueueResponse]:
    """Moderation queue across all published blogs."""
    service = CommentService(db)
    data = await service.list_for_moderation(
        page=page,
        limit=limit,
        sort_order=sort_order,
        status=comment_status,
        search=search,
    )
    return ApiResponse(message="Comments retrieved successfully", data=data)


@router.get("/stats", response_model=ApiResponse[CommentStatsResponse])
async def get_comment_stats(
    current_user: CurrentAdmin,
    db: DbSession,
) -> ApiResponse[CommentStatsResponse]:
    service = CommentService(db)
    data = await service.get_stats()
    return ApiResponse(message="Comment statistics retrieved successfully", data=data)


@router.patch("/bulk-moderate", response_model=ApiResponse[BulkModerateResponse])
async def bulk_moderate_comments(
    request: BulkModerateRequest,
    current_user: CurrentAdmin,
    db: DbSession,
) -> ApiResponse[BulkModerateResponse]:
    """Approve or reject many comments; each item reports its own outcome."""
    service = CommentService(db)
    data = await service.moderate_bulk(
        items=request.comment_ids,
        status=request.status,
        moderator_id=current_user.id,
        note=request.moderator_note,
    )
    return ApiResponse(
        message=(
            f"Bulk moderation completed: {data.summary.successful} successful, "
            f"{data.summary.failed} failed"
        ),
        data=data,
    )


@router.patch("/{blog_id}/{comment_id}/moderate", response_model=ApiResponse[ModeratedComment])
async def moderate_comment(
    blog_id: int,
    comment_id: int,
    request: ModerateRequest,
    current_user: CurrentAdmin,
    db: DbSession,
) -> ApiResponse[ModeratedComment]:
    service = CommentService(db)
    outcome = await service.moderate_one(
        blog_id=blog_id,
        comment_id=comment_id,
        status=request.status,
        moderator_id=current_user.id,
        note=request.moderator_note,
    )
    data = ModeratedComment(
        **to_admin_comment(outcome.comment).model_dump(),
        blog_title=outcome.blog.title,
        blog_slug=outcome.blog.slug,
    )
    return ApiResponse(message=f"Comment {request.status} successfully", data=data)


@router.delete("/{blog_id}/{comment_id}", response_model=ApiResponse[None])
async def delete_comment(
    blog_id: int,
    comment_id: int,
    current_user: CurrentAdmin,
    db: DbSession,
) -> ApiResponse[None]:
    service = CommentService(db)
    await service.delete_comment(blog_id, comment_id)
    return ApiResponse(message="Comment deleted successfully")

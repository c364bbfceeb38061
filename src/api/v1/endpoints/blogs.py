"""Blog post endpoints."""
import structlog
from fastapi import APIRouter, BackgroundTasks, Query, status

from src.core.deps import CurrentAdmin, DbSession, Mailer, SessionFactory
from src.schemas.blog import (
    BlogCreate,
    BlogListResponse,
    BlogResponse,
    BlogStatusUpdate,
    BlogUpdate,
)
from src.schemas.common import ApiResponse
from src.services.blog import BlogService, BlogWriteResult
from src.services.newsletter import dispatch_blog_newsletter_in_background

router = APIRouter()
logger = structlog.get_logger()


def _schedule_newsletter(
    result: BlogWriteResult,
    background_tasks: BackgroundTasks,
    session_factory: SessionFactory,
    mailer: Mailer,
) -> None:
    if not result.first_published:
        return
    background_tasks.add_task(
        dispatch_blog_newsletter_in_background,
        result.blog.id,
        session_factory,
        mailer,
    )
    logger.info("Newsletter dispatch scheduled", blog_id=result.blog.id)


@router.get("", response_model=ApiResponse[BlogListResponse])
async def list_blogs(
    db: DbSession,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    search: str = Query(""),
    category: str | None = Query(None),
) -> ApiResponse[BlogListResponse]:
    """List published blogs, newest first."""
    service = BlogService(db)
    data = await service.list_published(page=page, limit=limit, search=search, category=category)
    return ApiResponse(message="Blogs retrieved successfully", data=data)


@router.get("/{slug}", response_model=ApiResponse[BlogResponse])
async def get_blog(slug: str, db: DbSession) -> ApiResponse[BlogResponse]:
    """Read a published blog by slug."""
    service = BlogService(db)
    blog = await service.get_published_by_slug(slug)
    return ApiResponse(message="Blog retrieved successfully", data=BlogResponse.model_validate(blog))


@router.post("", response_model=ApiResponse[BlogResponse], status_code=status.HTTP_201_CREATED)
async def create_blog(
    request: BlogCreate,
    current_user: CurrentAdmin,
    db: DbSession,
    background_tasks: BackgroundTasks,
    session_factory: SessionFactory,
    mailer: Mailer,
) -> ApiResponse[BlogResponse]:
    """
    Create a blog.

    Creating it straight into ``published`` sends the newsletter after the
    response is returned.
    """
    service = BlogService(db)
    result = await service.create_blog(request, current_user)
    _schedule_newsletter(result, background_tasks, session_factory, mailer)

    return ApiResponse(
        message="Blog created successfully",
        data=BlogResponse.model_validate(result.blog),
    )


@router.put("/{blog_id}", response_model=ApiResponse[BlogResponse])
async def update_blog(
    blog_id: int,
    request: BlogUpdate,
    current_user: CurrentAdmin,
    db: DbSession,
    background_tasks: BackgroundTasks,
    session_factory: SessionFactory,
    mailer: Mailer,
) -> ApiResponse[BlogResponse]:
    """Update a blog; its first publication sends the newsletter."""
    service = BlogService(db)
    result = await service.update_blog(blog_id, request)
    _schedule_newsletter(result, background_tasks, session_factory, mailer)

    return ApiResponse(
        message="Blog updated successfully",
        data=BlogResponse.model_validate(result.blog),
    )


@router.patch("/{blog_id}/status", response_model=ApiResponse[BlogResponse])
async def change_blog_status(
    blog_id: int,
    request: BlogStatusUpdate,
    current_user: CurrentAdmin,
    db: DbSession,
    background_tasks: BackgroundTasks,
    session_factory: SessionFactory,
    mailer: Mailer,
) -> ApiResponse[BlogResponse]:
    """Publish, unpublish or archive a blog."""
    service = BlogService(db)
    result = await service.change_status(blog_id, request.status)
    _schedule_newsletter(result, background_tasks, session_factory, mailer)

    return ApiResponse(
        message=f"Blog {request.status.value} successfully",
        data=BlogResponse.model_validate(result.blog),
    )

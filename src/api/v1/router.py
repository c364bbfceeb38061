from fastapi import APIRouter

from src.api.v1.endpoints import auth, blogs, comments, health, subscriptions

api_router = APIRouter()

# Authentication endpoints
api_router.include_router(
    auth.router,
    prefix="/auth",
    tags=["Authentication"],
)

# Blog post endpoints
api_router.include_router(
    blogs.router,
    prefix="/blogs",
    tags=["Blogs"],
)

# Comment submission and moderation endpoints
api_router.include_router(
    comments.router,
    prefix="/comments",
    tags=["Comments"],
)

# Newsletter subscription endpoints
api_router.include_router(
    subscriptions.router,
    prefix="/subscriptions",
    tags=["Subscriptions"],
)

# Health check endpoints
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["Health"],
)

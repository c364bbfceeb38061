"""Authentication endpoints."""
import structlog
from fastapi import APIRouter

from src.core.deps import CurrentUser, DbSession
from src.core.exceptions import AuthenticationError
from src.schemas.auth import LoginRequest, TokenResponse, UserResponse
from src.schemas.common import ApiResponse
from src.services.auth import AuthService

router = APIRouter()
logger = structlog.get_logger()


@router.post("/login", response_model=ApiResponse[TokenResponse])
async def login(
    request: LoginRequest,
    db: DbSession,
) -> ApiResponse[TokenResponse]:
    """Authenticate the blog owner and return a bearer token."""
    auth_service = AuthService(db)

    user = await auth_service.authenticate_user(request.email, request.password)
    if not user:
        logger.warning("Failed login attempt", email=request.email)
        raise AuthenticationError("Incorrect email or password")

    tokens = auth_service.create_tokens(user)
    logger.info("User logged in", user_id=user.id)

    return ApiResponse(message="Login successful", data=TokenResponse(**tokens))


@router.get("/me", response_model=ApiResponse[UserResponse])
async def get_me(current_user: CurrentUser) -> ApiResponse[UserResponse]:
    """Get the authenticated user."""
    return ApiResponse(
        message="User retrieved successfully",
        data=UserResponse.model_validate(current_user),
    )

"""Newsletter subscription endpoints."""
from typing import Literal

import structlog
from fastapi import APIRouter, Depends, Query, Request

from src.core.deps import CurrentAdmin, DbSession, Mailer
from src.middleware.rate_limit import submission_rate_limit
from src.schemas.common import ApiResponse
from src.schemas.subscription import (
    ConfirmedSubscriber,
    ConfirmResponse,
    NewsletterDispatchResponse,
    PreferencesResponse,
    PreferencesUpdateRequest,
    SendNewsletterRequest,
    SubscribeRequest,
    SubscribeResponse,
    SubscriberListResponse,
    SubscriptionStatsResponse,
    UnsubscribeResponse,
)
from src.services.newsletter import NewsletterDispatcher
from src.services.subscription import SubscribeOutcome, SubscriptionService

router = APIRouter()
logger = structlog.get_logger()

SUBSCRIBE_MESSAGES = {
    SubscribeOutcome.ALREADY_SUBSCRIBED: ("Already subscribed", "You are already subscribed!"),
    SubscribeOutcome.CONFIRMATION_RESENT: ("Confirmation email sent", "Confirmation email resent!"),
    SubscribeOutcome.RESUBSCRIBED: (
        "Subscription created successfully",
        "Subscription successful! Please check your email to confirm.",
    ),
    SubscribeOutcome.SUBSCRIBED: (
        "Subscription created successfully",
        "Subscription successful! Please check your email to confirm.",
    ),
}


# ===========================================
# Public
# ===========================================

@router.post(
    "/subscribe",
    response_model=ApiResponse[SubscribeResponse],
    dependencies=[Depends(submission_rate_limit)],
)
async def subscribe(
    request: SubscribeRequest,
    http_request: Request,
    db: DbSession,
    mailer: Mailer,
) -> ApiResponse[SubscribeResponse]:
    """Start double opt-in for an email address."""
    service = SubscriptionService(db, mailer)
    preferences = (
        request.preferences.model_dump(exclude_none=True, mode="json")
        if request.preferences
        else {}
    )

    result = await service.subscribe(
        email=request.email,
        first_name=request.first_name,
        source=request.source,
        preferences=preferences,
        ip_address=http_request.client.host if http_request.client else None,
        user_agent=http_request.headers.get("User-Agent"),
        referrer=http_request.headers.get("Referer"),
    )

    title, message = SUBSCRIBE_MESSAGES[result.outcome]
    return ApiResponse(
        message=title,
        data=SubscribeResponse(
            message=message,
            email=result.subscriber.email,
            outcome=result.outcome.value,
        ),
    )


@router.get("/confirm/{token}", response_model=ApiResponse[ConfirmResponse])
async def confirm_subscription(
    token: str,
    db: DbSession,
    mailer: Mailer,
) -> ApiResponse[ConfirmResponse]:
    service = SubscriptionService(db, mailer)
    subscriber = await service.confirm(token)
    return ApiResponse(
        message="Subscription confirmed",
        data=ConfirmResponse(
            message="Subscription confirmed successfully!",
            subscriber=ConfirmedSubscriber(
                email=subscriber.email,
                confirmed_at=subscriber.confirmed_at,
            ),
        ),
    )


@router.post("/unsubscribe/{token}", response_model=ApiResponse[UnsubscribeResponse])
async def unsubscribe(
    token: str,
    db: DbSession,
    mailer: Mailer,
) -> ApiResponse[UnsubscribeResponse]:
    """Unsubscribe by token. Repeating the call is harmless."""
    service = SubscriptionService(db, mailer)
    result = await service.unsubscribe(token)
    message = (
        "You are already unsubscribed."
        if result.already_unsubscribed
        else "You have been unsubscribed successfully."
    )
    return ApiResponse(
        message="Unsubscribed successfully",
        data=UnsubscribeResponse(
            message=message,
            email=result.subscriber.email,
            already_unsubscribed=result.already_unsubscribed,
        ),
    )


@router.put("/preferences/{token}", response_model=ApiResponse[PreferencesResponse])
async def update_preferences(
    token: str,
    request: PreferencesUpdateRequest,
    db: DbSession,
    mailer: Mailer,
) -> ApiResponse[PreferencesResponse]:
    service = SubscriptionService(db, mailer)
    subscriber = await service.update_preferences(
        token,
        request.preferences.model_dump(exclude_none=True, mode="json"),
    )
    return ApiResponse(
        message="Preferences updated",
        data=PreferencesResponse(
            message="Preferences updated successfully",
            preferences=subscriber.preferences,
        ),
    )


# ===========================================
# Admin
# ===========================================

@router.get("", response_model=ApiResponse[SubscriberListResponse])
async def list_subscribers(
    current_user: CurrentAdmin,
    db: DbSession,
    mailer: Mailer,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    subscriber_status: str = Query("all", alias="status"),
    search: str = Query(""),
    sort_by: str = Query("subscriptionDate", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("desc", alias="sortOrder"),
) -> ApiResponse[SubscriberListResponse]:
    service = SubscriptionService(db, mailer)
    data = await service.list_subscribers(
        page=page,
        limit=limit,
        status=subscriber_status,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return ApiResponse(message="Subscribers retrieved successfully", data=data)


@router.get("/stats", response_model=ApiResponse[SubscriptionStatsResponse])
async def get_subscription_stats(
    current_user: CurrentAdmin,
    db: DbSession,
    mailer: Mailer,
) -> ApiResponse[SubscriptionStatsResponse]:
    service = SubscriptionService(db, mailer)
    data = await service.get_stats()
    return ApiResponse(message="Subscription statistics retrieved successfully", data=data)


@router.post("/send-newsletter", response_model=ApiResponse[NewsletterDispatchResponse])
async def send_newsletter(
    request: SendNewsletterRequest,
    current_user: CurrentAdmin,
    db: DbSession,
    mailer: Mailer,
) -> ApiResponse[NewsletterDispatchResponse]:
    """
    Send a published blog to matching active subscribers.

    With ``testEmail`` only that address receives the mail and no subscriber
    counters change.
    """
    dispatcher = NewsletterDispatcher(db, mailer)
    blog, result = await dispatcher.send_newsletter(request.blog_id, request.test_email)

    if result.total_recipients == 0:
        message = "No active subscribers found"
    elif request.test_email:
        message = "Test email sent successfully"
    else:
        message = "Newsletter sent successfully"

    logger.info(
        "Newsletter requested",
        blog_id=blog.id,
        admin_id=current_user.id,
        sent_count=result.sent_count,
        error_count=result.error_count,
    )

    return ApiResponse(
        message="Newsletter delivery completed",
        data=NewsletterDispatchResponse(
            message=message,
            total_recipients=result.total_recipients,
            sent_count=result.sent_count,
            error_count=result.error_count,
            blog_title=blog.title,
        ),
    )

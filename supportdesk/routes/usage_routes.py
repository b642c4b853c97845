# supportdesk/routes/usage_routes.py
"""Token budget and chat notification routes"""
from fastapi import APIRouter, Depends

from supportdesk.dependencies import (
    get_current_user_id,
    get_notification_service,
    get_token_usage_service,
)
from supportdesk.schemas.common import APIResponse
from supportdesk.schemas.usage import CreditRequest, RateLimitRequest, TrackUsageRequest
from supportdesk.services.chat_notification_service import ChatNotificationService
from supportdesk.services.token_usage_service import TokenUsageService

router = APIRouter(prefix="/api/usage", tags=["usage"])
notifications_router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.post("/check")
async def check_rate_limit(
    request: RateLimitRequest,
    user_id: str = Depends(get_current_user_id),
    usage: TokenUsageService = Depends(get_token_usage_service),
) -> APIResponse:
    result = await usage.rate_limit(user_id, request.request_tokens, request.tier)
    return APIResponse.ok(result.to_dict())


@router.post("/track")
async def track_usage(
    request: TrackUsageRequest,
    user_id: str = Depends(get_current_user_id),
    usage: TokenUsageService = Depends(get_token_usage_service),
) -> APIResponse:
    result = await usage.track_token_usage(user_id, request.token_count, request.model)
    return APIResponse(success=result["success"], data=result)


@router.post("/credit")
async def credit_tokens(
    request: CreditRequest,
    user_id: str = Depends(get_current_user_id),
    usage: TokenUsageService = Depends(get_token_usage_service),
) -> APIResponse:
    result = await usage.credit_tokens(user_id, request.amount)
    return APIResponse(success=result["success"], data=result)


@router.get("")
async def get_usage(
    user_id: str = Depends(get_current_user_id),
    usage: TokenUsageService = Depends(get_token_usage_service),
) -> APIResponse:
    result = await usage.get_usage(user_id)
    return APIResponse(success=result["success"], data=result)


@router.delete("/{target_user_id}")
async def reset_usage(
    target_user_id: str,
    user_id: str = Depends(get_current_user_id),
    usage: TokenUsageService = Depends(get_token_usage_service),
) -> APIResponse:
    """Admin reset of another user's window"""
    reset = await usage.reset_usage(target_user_id)
    return APIResponse(success=reset, data={"user_id": target_user_id, "reset": reset})


@notifications_router.get("")
async def get_notifications(
    user_id: str = Depends(get_current_user_id),
    notifications: ChatNotificationService = Depends(get_notification_service),
) -> APIResponse:
    flags = await notifications.get_chat_notifications(user_id)
    if flags is None:
        return APIResponse.fail("NOTIFICATIONS_UNAVAILABLE", "Notifications unavailable")
    return APIResponse.ok(flags)


@notifications_router.delete("/{chat_id}")
async def mark_chat_read(
    chat_id: str,
    user_id: str = Depends(get_current_user_id),
    notifications: ChatNotificationService = Depends(get_notification_service),
) -> APIResponse:
    cleared = await notifications.set_chat_answer_read(user_id, chat_id)
    return APIResponse(success=cleared, data={"chat_id": chat_id})

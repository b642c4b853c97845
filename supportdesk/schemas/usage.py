# supportdesk/schemas/usage.py
from pydantic import BaseModel, Field
from typing import Optional

from supportdesk.services.token_usage_service import UserTier


class RateLimitRequest(BaseModel):
    request_tokens: int = Field(..., ge=0)
    tier: UserTier = UserTier.DEFAULT


class TrackUsageRequest(BaseModel):
    token_count: int = Field(..., ge=0)
    model: Optional[str] = None


class CreditRequest(BaseModel):
    """Omitted amount credits the configured default."""
    amount: Optional[int] = Field(None, ge=0)

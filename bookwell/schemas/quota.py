"""
Pydantic schemas for plan quota checks
"""

from pydantic import BaseModel, Field
from typing import Optional


class QuotaCheckRequest(BaseModel):
    limit_name: str = Field(..., description="Plan limit, e.g. max_staff")
    current_count: int = Field(..., ge=0, description="Count before the addition")


class QuotaResponse(BaseModel):
    limit_name: str
    is_limited: bool
    limit: int
    can_proceed: bool
    current_count: Optional[int] = None
    plan_name: Optional[str] = None
    subscription_lapsed: Optional[bool] = None

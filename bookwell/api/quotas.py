"""
Plan quota API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session
import structlog

from bookwell.core.database import get_session
from bookwell.core.dependencies import Identity, require_permission
from bookwell.core.permissions import Permission
from bookwell.schemas import QuotaCheckRequest, QuotaResponse
from bookwell.services.quota import check_limit, current_usage, load_plan_context

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post("/check", response_model=QuotaResponse)
def check_quota(
    data: QuotaCheckRequest,
    identity: Identity = Depends(require_permission(Permission.QUOTA_VIEW)),
    session: Session = Depends(get_session)
):
    """Compare a caller-supplied count against the tenant's plan limit"""
    context = load_plan_context(session, identity.tenant_id)
    result = check_limit(context, data.limit_name, data.current_count)
    return QuotaResponse(
        limit_name=data.limit_name,
        current_count=data.current_count,
        plan_name=context.plan_name,
        subscription_lapsed=context.subscription_lapsed,
        **result.to_dict()
    )


@router.get("/{limit_name}", response_model=QuotaResponse)
def get_quota_usage(
    limit_name: str,
    identity: Identity = Depends(require_permission(Permission.QUOTA_VIEW)),
    session: Session = Depends(get_session)
):
    """Current usage of a plan limit, counted live"""
    current = current_usage(session, identity.tenant_id, limit_name)
    if current is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown limit: {limit_name}"
        )

    context = load_plan_context(session, identity.tenant_id)
    result = check_limit(context, limit_name, current)
    return QuotaResponse(
        limit_name=limit_name,
        current_count=current,
        plan_name=context.plan_name,
        subscription_lapsed=context.subscription_lapsed,
        **result.to_dict()
    )

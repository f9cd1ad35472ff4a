"""
Plan quota evaluation

``check_limit`` is pure: it compares a caller-supplied count against a
``PlanContext`` snapshot. Loading the snapshot and computing live counts
are separate helpers so tests can inject a fixed context.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Mapping, Optional
import uuid

from sqlalchemy import func
from sqlmodel import Session, select
import structlog

from bookwell.models import (
    Appointment, Plan, PlanFeature, Service, SubscriptionStatus, Tenant, Worker
)
from bookwell.services.time_ranges import month_bounds, utcnow

logger = structlog.get_logger(__name__)

UNLIMITED = -1

# Limit names understood by the live counters
MAX_STAFF = "max_staff"
MAX_SERVICES = "max_services"
MAX_BOOKINGS_PER_MONTH = "max_bookings_per_month"

# Feature toggles
FEATURE_CREATE_APPOINTMENTS = "create_appointments"


@dataclass(frozen=True)
class QuotaResult:
    """Outcome of comparing a count against a plan limit"""
    is_limited: bool
    limit: int
    can_proceed: bool

    def to_dict(self) -> Dict[str, object]:
        return {
            "is_limited": self.is_limited,
            "limit": self.limit,
            "can_proceed": self.can_proceed,
        }


@dataclass(frozen=True)
class PlanContext:
    """Snapshot of a tenant's plan taken once per request"""
    tenant_id: Optional[uuid.UUID] = None
    plan_name: Optional[str] = None
    limits: Mapping[str, int] = field(default_factory=dict)
    features: Mapping[str, bool] = field(default_factory=dict)
    subscription_lapsed: bool = False

    def limit_for(self, limit_name: str) -> int:
        """Numeric limit for a name; missing or non-numeric means unlimited"""
        value = self.limits.get(limit_name)
        if value is None or isinstance(value, bool):
            return UNLIMITED
        try:
            return int(value)
        except (TypeError, ValueError):
            return UNLIMITED

    def feature_enabled(self, feature_name: str) -> bool:
        """Only an explicit disabled toggle turns a feature off"""
        return self.features.get(feature_name, True) is not False


def check_limit(context: PlanContext, limit_name: str, current_count: int) -> QuotaResult:
    """Compare a pre-addition count against a plan limit

    A count equal to the limit already blocks further additions.
    """
    limit = context.limit_for(limit_name)
    if limit == UNLIMITED:
        return QuotaResult(is_limited=False, limit=UNLIMITED, can_proceed=True)

    is_limited = current_count >= limit
    return QuotaResult(is_limited=is_limited, limit=limit, can_proceed=not is_limited)


def is_subscription_lapsed(tenant: Optional[Tenant], now: Optional[datetime] = None) -> bool:
    """Check whether the tenant's trial or subscription no longer covers bookings"""
    if tenant is None:
        return True

    now = now or utcnow()
    status = tenant.subscription_status

    if status == SubscriptionStatus.EXPIRED:
        return True

    if status == SubscriptionStatus.CANCELLED:
        # Paid period runs out at subscription_ends_at
        if tenant.subscription_ends_at is None:
            return True
        return tenant.subscription_ends_at < now

    if status == SubscriptionStatus.TRIAL:
        if tenant.trial_ends_at is None:
            return True
        return tenant.trial_ends_at < now

    if status == SubscriptionStatus.ACTIVE:
        if tenant.subscription_ends_at is not None:
            return tenant.subscription_ends_at < now
        return False

    return True


def load_plan_context(
    session: Session,
    tenant_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> PlanContext:
    """Build the plan snapshot for a tenant

    A tenant without a plan has no limits; an unknown tenant is treated
    as lapsed.
    """
    tenant = session.exec(select(Tenant).where(Tenant.id == tenant_id)).first()
    if tenant is None:
        logger.warning(f"Plan context requested for unknown tenant {tenant_id}")
        return PlanContext(tenant_id=tenant_id, subscription_lapsed=True)

    lapsed = is_subscription_lapsed(tenant, now)
    if tenant.plan_id is None:
        return PlanContext(tenant_id=tenant_id, subscription_lapsed=lapsed)

    plan = session.exec(select(Plan).where(Plan.id == tenant.plan_id)).first()
    if plan is None:
        logger.warning(f"Tenant {tenant_id} references missing plan {tenant.plan_id}")
        return PlanContext(tenant_id=tenant_id, subscription_lapsed=lapsed)

    toggles = session.exec(
        select(PlanFeature).where(PlanFeature.plan_id == plan.id)
    ).all()

    return PlanContext(
        tenant_id=tenant_id,
        plan_name=plan.name,
        limits=dict(plan.features or {}),
        features={toggle.feature_name: toggle.enabled for toggle in toggles},
        subscription_lapsed=lapsed,
    )


def check_quota(
    session: Session,
    tenant_id: uuid.UUID,
    limit_name: str,
    current_count: int,
) -> QuotaResult:
    """Resolve the tenant's plan and compare ``current_count`` to a limit"""
    context = load_plan_context(session, tenant_id)
    return check_limit(context, limit_name, current_count)


# Live counters

def count_active_workers(session: Session, tenant_id: uuid.UUID) -> int:
    return session.exec(
        select(func.count()).select_from(Worker).where(
            Worker.tenant_id == tenant_id,
            Worker.active == True  # noqa: E712
        )
    ).one()


def count_services(session: Session, tenant_id: uuid.UUID) -> int:
    """All services, active or not"""
    return session.exec(
        select(func.count()).select_from(Service).where(Service.tenant_id == tenant_id)
    ).one()


def count_bookings_this_month(
    session: Session,
    tenant_id: uuid.UUID,
    now: Optional[datetime] = None,
) -> int:
    """Appointments of any status starting within the current calendar month"""
    month_start, next_month = month_bounds(now or utcnow())
    return session.exec(
        select(func.count()).select_from(Appointment).where(
            Appointment.tenant_id == tenant_id,
            Appointment.starts_at >= month_start,
            Appointment.starts_at < next_month
        )
    ).one()


LIVE_COUNTERS = {
    MAX_STAFF: count_active_workers,
    MAX_SERVICES: count_services,
    MAX_BOOKINGS_PER_MONTH: count_bookings_this_month,
}


def current_usage(session: Session, tenant_id: uuid.UUID, limit_name: str) -> Optional[int]:
    """Live count backing a limit name, or None for unknown names"""
    counter = LIVE_COUNTERS.get(limit_name)
    if counter is None:
        return None
    return counter(session, tenant_id)

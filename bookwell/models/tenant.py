"""
Tenant model for multi-tenant isolation
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON
from datetime import datetime
from typing import Optional
from enum import Enum
import uuid


class SubscriptionStatus(str, Enum):
    """Subscription state of a tenant"""
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class Tenant(SQLModel, table=True):
    """A business account; every other entity is scoped to one tenant"""

    __tablename__ = "tenants"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(max_length=255, index=True)
    slug: str = Field(max_length=255, unique=True, index=True)
    timezone: str = Field(
        default="UTC",
        max_length=64,
        description="IANA timezone used to evaluate working hours"
    )
    working_hours: Optional[dict] = Field(
        default=None,
        description='Opening hours as {"start": "HH:MM", "end": "HH:MM"}',
        sa_column=Column(JSON, nullable=True)
    )

    # Subscription
    plan_id: Optional[uuid.UUID] = Field(
        default=None,
        foreign_key="plans.id",
        nullable=True,
        description="Current subscription plan"
    )
    subscription_status: SubscriptionStatus = Field(
        default=SubscriptionStatus.ACTIVE,
        description="Subscription lifecycle state"
    )
    trial_ends_at: Optional[datetime] = Field(default=None, nullable=True)
    subscription_ends_at: Optional[datetime] = Field(default=None, nullable=True)

    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default=None, nullable=True)

    class Config:
        indexes = [
            {"name": "idx_tenant_slug", "columns": ["slug"]},
            {"name": "idx_tenant_is_active", "columns": ["is_active"]},
        ]

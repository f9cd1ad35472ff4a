"""
Subscription plans and their feature toggles
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, JSON, Numeric, UniqueConstraint
from decimal import Decimal
from typing import Optional
import uuid


class Plan(SQLModel, table=True):
    """Subscription tier

    ``features`` holds numeric limits keyed by name, e.g.
    ``{"max_staff": 3, "max_services": 10, "max_bookings_per_month": -1}``.
    A value of -1 (or a missing key) means unlimited.
    """

    __tablename__ = "plans"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    name: str = Field(max_length=100, unique=True, index=True)
    price: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(10, 2), nullable=False)
    )
    features: dict = Field(
        default_factory=dict,
        description="Numeric limits for the plan",
        sa_column=Column(JSON, nullable=False)
    )
    active: bool = Field(default=True)


class PlanFeature(SQLModel, table=True):
    """Boolean feature toggle attached to a plan"""

    __tablename__ = "plan_features"
    __table_args__ = (
        UniqueConstraint("plan_id", "feature_name", name="uq_plan_feature"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    plan_id: uuid.UUID = Field(foreign_key="plans.id", index=True)
    feature_name: str = Field(max_length=100)
    enabled: bool = Field(default=True)
    description: Optional[str] = Field(default=None, max_length=500, nullable=True)

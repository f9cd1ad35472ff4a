"""
Bookable service model
"""

from sqlmodel import Field, SQLModel
from sqlalchemy import Column, Numeric
from datetime import datetime
from decimal import Decimal
from typing import Optional
import uuid


class Service(SQLModel, table=True):
    """An offering customers can book

    Group fields (max_capacity, min_capacity, allow_waitlist) only carry
    meaning when ``is_group_service`` is set.
    """

    __tablename__ = "services"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    tenant_id: uuid.UUID = Field(
        foreign_key="tenants.id",
        index=True,
        description="Tenant ID for multi-tenant isolation"
    )
    name: str = Field(max_length=255)
    duration: int = Field(gt=0, description="Duration in minutes")
    price: Decimal = Field(
        default=Decimal("0"),
        sa_column=Column(Numeric(10, 2), nullable=False)
    )
    active: bool = Field(default=True, index=True)

    # Group sessions
    is_group_service: bool = Field(default=False)
    max_capacity: Optional[int] = Field(default=None, nullable=True)
    min_capacity: Optional[int] = Field(default=None, nullable=True)
    allow_waitlist: bool = Field(default=False)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        indexes = [
            {"name": "idx_service_tenant_id", "columns": ["tenant_id"]},
            {"name": "idx_service_active", "columns": ["active"]},
        ]

    def is_group_capable(self) -> bool:
        """Check if the service runs shared sessions"""
        return bool(self.is_group_service) and (self.max_capacity or 0) > 1

    def capacity(self) -> int:
        """Seats per session (1 for individual services)"""
        return self.max_capacity if self.is_group_capable() else 1

    def waitlist_enabled(self) -> bool:
        return self.is_group_capable() and bool(self.allow_waitlist)

    def validate_group_settings(self) -> tuple[bool, str]:
        """Check the capacity fields of a group service"""
        if not self.is_group_service:
            return True, "Not a group service"
        if self.max_capacity is None or self.max_capacity < 2:
            return False, "Group services need a max capacity of at least 2"
        if self.min_capacity is not None and self.min_capacity >= self.max_capacity:
            return False, "Min capacity must be lower than max capacity"
        return True, "Valid group settings"

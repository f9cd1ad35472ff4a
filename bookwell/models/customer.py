"""
Customer model
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
from typing import Optional
import uuid


class Customer(SQLModel, table=True):
    """A person who books appointments with a tenant"""

    __tablename__ = "customers"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    tenant_id: uuid.UUID = Field(
        foreign_key="tenants.id",
        index=True,
        description="Tenant ID for multi-tenant isolation"
    )
    name: str = Field(max_length=255)
    phone: Optional[str] = Field(default=None, max_length=50, nullable=True)
    email: Optional[str] = Field(default=None, max_length=255, nullable=True)
    blocked: bool = Field(default=False, description="Blocked customers cannot book")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        indexes = [
            {"name": "idx_customer_tenant_id", "columns": ["tenant_id"]},
        ]

"""
Worker model and service qualifications
"""

from sqlmodel import Field, SQLModel
from datetime import datetime
import uuid


class Worker(SQLModel, table=True):
    """Staff member whose time is allocated by appointments"""

    __tablename__ = "workers"

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    tenant_id: uuid.UUID = Field(
        foreign_key="tenants.id",
        index=True,
        description="Tenant ID for multi-tenant isolation"
    )
    name: str = Field(max_length=255)
    active: bool = Field(default=True, index=True)

    # Bumped under lock by every booking write touching this worker's calendar
    schedule_version: int = Field(
        default=0,
        description="Write counter serialising check-and-insert per worker"
    )

    created_at: datetime = Field(default_factory=datetime.utcnow)

    class Config:
        indexes = [
            {"name": "idx_worker_tenant_id", "columns": ["tenant_id"]},
            {"name": "idx_worker_active", "columns": ["active"]},
        ]


class WorkerService(SQLModel, table=True):
    """Services a worker is qualified to perform"""

    __tablename__ = "worker_services"

    worker_id: uuid.UUID = Field(foreign_key="workers.id", primary_key=True)
    service_id: uuid.UUID = Field(foreign_key="services.id", primary_key=True)

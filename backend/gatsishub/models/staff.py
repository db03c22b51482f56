from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from gatsishub.models.common import UTCDateTime, utcnow

ACCOUNT_ACTIVE = "Active"
ACCOUNT_ARCHIVED = "Archived"

QUOTA_STATUSES = ("Active", "Completed", "Cancelled")

SUBMISSION_PENDING = "Pending"
SUBMISSION_VERIFIED = "Verified"
SUBMISSION_REJECTED = "Rejected"


class Employee(SQLModel, table=True):
    __tablename__ = "employees"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    email: Optional[str] = Field(default=None, unique=True)
    department: Optional[str] = None  # Production, Assembly, Sales Admin, ...
    role: Optional[str] = Field(default=None, index=True)
    contact_details: Optional[str] = None
    shift_hours: Optional[str] = None
    is_present: bool = False
    account_status: str = Field(default=ACCOUNT_ACTIVE, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Team(SQLModel, table=True):
    __tablename__ = "teams"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(unique=True, index=True)
    description: Optional[str] = None
    members: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    quota: Optional[int] = None
    daily_quota: Optional[int] = None
    assigned_orders: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    linked_quota_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class Quota(SQLModel, table=True):
    __tablename__ = "quotas"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    target_quota: int = 0
    finished_quota: int = 0
    team_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    assigned_orders: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    material_count: Dict[str, float] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: str = Field(default="Active", index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)


class ProductionSubmission(SQLModel, table=True):
    """Units an employee reports finished against a quota, pending supervisor review."""
    __tablename__ = "production_submissions"

    id: Optional[int] = Field(default=None, primary_key=True)
    quota_id: int = Field(index=True)
    order_id: str = Field(index=True)
    employee_id: int = Field(index=True)
    team_id: Optional[int] = Field(default=None, index=True)
    reported_completed: int
    submission_notes: Optional[str] = None
    priority: str = "Medium"
    status: str = Field(default=SUBMISSION_PENDING, index=True)
    verified_by: Optional[int] = None
    verified_at: Optional[datetime] = Field(default=None, sa_type=UTCDateTime)
    verification_notes: Optional[str] = None
    submitted_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime, index=True)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime)
